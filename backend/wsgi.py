from scentpos import create_app

app = create_app()
