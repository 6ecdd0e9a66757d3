from singleton_process.cli import app

app(prog_name="singleton")
