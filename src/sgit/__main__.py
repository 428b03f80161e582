from .core import app

app(prog_name="sgit")
