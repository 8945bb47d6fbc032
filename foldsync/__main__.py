from foldsync.cli import app

app()
