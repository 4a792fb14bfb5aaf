from skilltree.cli import run

run()
