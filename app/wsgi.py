from app.showcase import create_app

app = create_app()
