from gpterm.main import run

run()
