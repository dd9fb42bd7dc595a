from app.knockbase import create_app

app = create_app()
