from app.zv import create_app

app = create_app()
