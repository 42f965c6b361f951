"""Command-line interface for the slidesmith rendering engine."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .color_resolver import resolve_theme
from .exceptions import SlidesmithError
from .models import RenderSettings
from .presentation_builder import PresentationBuilder
from .template_loader import TemplateLoader
from .template_validator import TemplateValidator

# Load environment variables
load_dotenv()

console = Console()


def _configure_logging(debug: bool, log_file: Optional[Path]):
    """Configure root logging handlers and level."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w"))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def _load_request(request_path: Path, template: Optional[Path], debug: bool):
    try:
        return TemplateLoader().load_request(request_path, template_path=template)
    except (SlidesmithError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error loading request: {e}[/red]")
        if debug:
            import traceback
            console.print(traceback.format_exc())
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Show stack traces on error")
@click.option("--log-file", type=click.Path(path_type=Path), help="Write debug logs to file")
@click.pass_context
def cli(ctx: click.Context, debug: bool, log_file: Optional[Path]):
    """
    slidesmith - template-driven slide rendering.

    Render presentation requests into .pptx files using layout templates.
    """
    _configure_logging(debug, log_file)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["log_file"] = log_file


@cli.command()
@click.argument("request_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--template", "-t",
    type=click.Path(exists=True, path_type=Path),
    help="Template file (.json/.yaml) replacing any embedded templateConfig"
)
@click.option(
    "--output-dir", "-o",
    type=click.Path(path_type=Path),
    help="Directory receiving the presentation (default: $SLIDESMITH_OUTPUT_DIR or presentations)"
)
@click.pass_context
def render(ctx: click.Context, request_path: Path, template: Optional[Path], output_dir: Optional[Path]):
    """Render REQUEST_PATH into a presentation."""
    debug = ctx.obj.get("debug", False)
    request = _load_request(request_path, template, debug)
    settings = RenderSettings.from_env(output_dir=str(output_dir) if output_dir else None)

    console.print(f"[bold green]Rendering {request.file_name}[/bold green] ({len(request.slides)} slides)")
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Composing slides...", total=None)
        result = PresentationBuilder(settings).build(request)
        progress.remove_task(task)

    if not result.success:
        console.print(f"[red]Rendering failed: {result.message}[/red]")
        if debug and result.error:
            console.print(result.error)
        sys.exit(1)

    console.print(f"[green]Presentation saved to: {result.file_path}[/green]")


@cli.command()
@click.argument("request_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--template", "-t",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Template file (.json/.yaml) to validate against"
)
@click.pass_context
def validate(ctx: click.Context, request_path: Path, template: Path):
    """Check that every slide of REQUEST_PATH fits the template."""
    request = _load_request(request_path, template, ctx.obj.get("debug", False))
    recipes = [request.recipe_for(i) for i in range(len(request.slides))]
    errors = TemplateValidator().validate(request.template_config, request.slides, recipes)

    if not errors:
        console.print(f"[green]Template fits all {len(request.slides)} slides[/green]")
        return

    table = Table(title="Template Validation Findings")
    table.add_column("#", style="bold")
    table.add_column("Finding")
    for i, error in enumerate(errors, 1):
        table.add_row(str(i), error)
    console.print(table)
    sys.exit(1)


@cli.command()
@click.argument("request_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--template", "-t",
    type=click.Path(exists=True, path_type=Path),
    help="Template file (.json/.yaml) whose tokens and rules apply"
)
@click.pass_context
def palette(ctx: click.Context, request_path: Path, template: Optional[Path]):
    """Show the resolved theme and palette for REQUEST_PATH."""
    request = _load_request(request_path, template, ctx.obj.get("debug", False))
    theme = resolve_theme(request, RenderSettings.from_env().default_font)

    table = Table(title="Resolved Theme")
    table.add_column("Token", style="bold")
    table.add_column("Value")
    table.add_row("Primary", theme.primary)
    table.add_row("Secondary", theme.secondary)
    table.add_row("Accent", theme.accent)
    table.add_row("Corner radius", str(theme.corner_radius))
    table.add_row("Spacing unit", str(theme.spacing_unit))
    table.add_row("Shadow preset", theme.shadow_preset)
    table.add_row("Fonts", f"{theme.head_font} / {theme.body_font}")
    table.add_row("Distribution", theme.palette_distribution)
    console.print(table)

    swatches = Table(title="Palette")
    swatches.add_column("#", style="bold")
    swatches.add_column("Color")
    swatches.add_column("Swatch")
    for i, color in enumerate(theme.palette):
        swatches.add_row(str(i), color, f"[on {color}]      [/]")
    console.print(swatches)


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
