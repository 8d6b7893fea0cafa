from harmony.app import create_app

app = create_app()
