#!/usr/bin/env python
"""
Command-line interface for EnhanceMD
"""

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path

# Add parent directory to path to import enhancemd
sys.path.insert(0, str(Path(__file__).parent.parent))

from enhancemd.version_info import __version__, __build_timestamp__, __build_type__


def print_version():
    """Print version information."""
    print(f"EnhanceMD v{__version__}")
    print(f"Build: {__build_timestamp__}")
    print(f"Build Type: {__build_type__}")


def load_variables(path: Path):
    """Read a JSON array of {name, value, type, description} objects."""
    from enhancemd.features.variables import Variable

    with open(path, 'r', encoding='utf-8') as f:
        items = json.load(f)
    if not isinstance(items, list):
        raise ValueError(f"{path}: expected a JSON array of variables")
    return [Variable.from_dict(item) for item in items]


def load_images(paths):
    from enhancemd.features.images import ImageAsset

    assets = []
    for path in paths:
        path = Path(path)
        assets.append(ImageAsset(path.name, path.read_bytes(), mimetypes.guess_type(path.name)[0]))
    return assets


def render_file(args):
    """Render a markdown file (or a template) to markdown or HTML."""
    from enhancemd.core.session import EditingSession
    from enhancemd.features import exporters

    session = EditingSession(debounce_seconds=0, min_batch_seconds=0)
    diagnostics = []

    if args.template:
        loaded = session.load_template(args.template, diagnostics)
        if loaded is None:
            print(f"Unknown template: {args.template}", file=sys.stderr)
            return 1
        content = loaded[0] if args.file is None else None
    else:
        content = None

    if args.file is not None:
        content = Path(args.file).read_text(encoding='utf-8')
    if content is None:
        print("Nothing to render: give a FILE or --template", file=sys.stderr)
        return 1

    if args.vars:
        session.variables.replace_all(load_variables(Path(args.vars)))

    if args.images:
        report = asyncio.run(session.add_images(load_images(args.images), diagnostics))
        print(report.message, file=sys.stderr)

    result = session.render(content, render_html=args.format == 'html')
    for diagnostic in diagnostics + result.diagnostics:
        print(f"warning: {diagnostic.kind.value}: {diagnostic.message}", file=sys.stderr)
    if result.image_status.unmatched:
        print(f"Missing images: {', '.join(result.image_status.unmatched)}", file=sys.stderr)

    if args.format == 'html':
        output = exporters.export_html(result)
    else:
        output = exporters.export_markdown(result)

    if args.output:
        Path(args.output).write_bytes(output)
        print(f"Wrote {len(output)} bytes to {args.output}", file=sys.stderr)
    else:
        sys.stdout.write(output.decode('utf-8'))
    return 0


def list_templates(args):
    from enhancemd.core.config import load_config
    from enhancemd.core.store import JsonFileStore
    from enhancemd.features.templates import TemplateCatalog

    catalog = TemplateCatalog(JsonFileStore(Path(load_config()['store_path'])))
    for template in catalog.all():
        kind = 'user' if template.is_user_template else 'built-in'
        print(f"{template.id:<24} {template.name:<28} [{kind}] {template.category or ''}")
    return 0


def start_server(args):
    """Start the Flask server."""
    from enhancemd.app import app

    print(f"Starting EnhanceMD v{__version__}")
    print(f"Server: http://{args.host}:{args.port}")
    print("Press Ctrl+C to stop")
    print()

    app.run(host=args.host, port=args.port, debug=args.debug)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog='enhancemd',
        description=f'EnhanceMD v{__version__}',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  enhancemd --version                          Show version information
  enhancemd render doc.md --vars vars.json     Render with variables to stdout
  enhancemd render --template report -f html   Render a built-in template to HTML
  enhancemd serve --port 8080                  Start server on port 8080
        """
    )
    parser.add_argument('--version', '-v', action='store_true', help='Show version information')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    render_parser = subparsers.add_parser('render', help='Render a markdown document')
    render_parser.add_argument('file', nargs='?', help='Markdown file to render')
    render_parser.add_argument('--vars', help='JSON file with the variable list')
    render_parser.add_argument('--template', '-t', help='Template id to load variables (and content) from')
    render_parser.add_argument('--images', '-i', nargs='+', help='Image files to embed')
    render_parser.add_argument('--format', '-f', choices=['md', 'html'], default='md',
                               help='Output format (default: md)')
    render_parser.add_argument('--output', '-o', help='Write to this file instead of stdout')
    render_parser.set_defaults(func=render_file)

    serve_parser = subparsers.add_parser('serve', help='Start the editing server')
    serve_parser.add_argument('--host', type=str, default='127.0.0.1', help='Host to bind to (default: 127.0.0.1)')
    serve_parser.add_argument('--port', '-p', type=int, default=8000, help='Port to bind to (default: 8000)')
    serve_parser.add_argument('--debug', '-d', action='store_true', help='Run in debug mode')
    serve_parser.set_defaults(func=start_server)

    templates_parser = subparsers.add_parser('templates', help='List available templates')
    templates_parser.set_defaults(func=list_templates)
    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    # Diagnostics are reported by the commands themselves
    logging.basicConfig(level=logging.ERROR, format="%(levelname)s %(name)s: %(message)s")

    if args.version:
        print_version()
        return 0
    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nStopped.")
        return 0
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
