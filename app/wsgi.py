from app.elab import create_app

app = create_app()
