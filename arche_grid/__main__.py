"""
CLI entry point for arche-grid.

Usage:
    arche-grid                    # SSE server on port 8080 (default)
    arche-grid --stdio            # For MCP clients (Claude Code)
    arche-grid --visible          # Show the Chrome window
    arche-grid --no-web           # No dashboard API
"""

import argparse
import os

from .server import run


def main():
    parser = argparse.ArgumentParser(
        prog="arche-grid",
        description="MCP Server for interactive data grids in headless Chrome",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  arche-grid                          # Start SSE server (default)
  arche-grid --stdio                  # For MCP clients (Claude Code)
  arche-grid --port 9000              # Custom SSE port
  arche-grid --web-port 3100          # Dashboard API on another port

For Claude Code (~/.claude/settings.json):
  {"mcpServers": {"grid": {"command": "arche-grid", "args": ["--stdio"]}}}

Grid Tools:
  create_grid          Create a grid from columns and rows
  update_grid_data     Replace all rows
  apply_grid_filter    Apply a filter model
  apply_grid_sort      Sort by one or more columns
  execute_grid_method  Call any grid API method
  get_grid_stats       Row counts, filters, sorting, selection
  export_grid          Export as csv or excel
  list_grids           Active grids
  destroy_grid         Close a grid

Environment:
  WEB_SERVER_HOST, WEB_SERVER_PORT   dashboard defaults
        """
    )

    # Transport - stdio is opt-in, SSE is default
    parser.add_argument(
        "--stdio",
        action="store_true",
        help="Use stdio transport (for MCP clients like Claude Code)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="SSE server port (default: 8080)"
    )

    # Browser options
    parser.add_argument(
        "--visible",
        action="store_true",
        help="Show the Chrome window instead of running headless"
    )
    parser.add_argument(
        "--chrome-port",
        type=int,
        default=9223,
        help="Chrome remote debugging port (default: 9223)"
    )
    parser.add_argument(
        "--chrome-path",
        type=str,
        default=None,
        help="Chrome executable (default: auto-detect)"
    )

    # Dashboard
    parser.add_argument(
        "--no-web",
        action="store_true",
        help="Disable the dashboard API and websocket"
    )
    parser.add_argument(
        "--web-host",
        type=str,
        default=os.environ.get("WEB_SERVER_HOST", "localhost"),
        help="Dashboard host (default: $WEB_SERVER_HOST or localhost)"
    )
    parser.add_argument(
        "--web-port",
        type=int,
        default=int(os.environ.get("WEB_SERVER_PORT", "3000")),
        help="Dashboard port (default: $WEB_SERVER_PORT or 3000)"
    )

    args = parser.parse_args()

    run(
        transport="stdio" if args.stdio else "sse",
        port=args.port,
        headless=not args.visible,
        chrome_port=args.chrome_port,
        chrome_path=args.chrome_path,
        web=not args.no_web,
        web_host=args.web_host,
        web_port=args.web_port,
    )


if __name__ == "__main__":
    main()
