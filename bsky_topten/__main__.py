from bsky_topten.cli import app

app(prog_name="bsky-topten")
