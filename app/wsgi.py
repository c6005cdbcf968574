from app.travelnotes import create_app

app = create_app()
