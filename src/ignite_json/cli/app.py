import typer
import rich_click  # noqa: F401

from .create import create

app = typer.Typer(
    name="create-ignite-json",
    help="Create an ignite-json JSON server on Cloudflare Workers",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.command()(create)


def main() -> None:
    app()
