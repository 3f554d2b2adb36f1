from fhirbatch.ui.cli import run

run()
