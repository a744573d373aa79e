from coollibrary.cli import app

app(prog_name="coollibrary")
