#!/usr/bin/env python3
"""support-oauth CLI - run and inspect the support portal OAuth server.

Usage:
    support-oauth [serve|check|status|credentials|version]
"""
import argparse
import os
import sys

import uvicorn
from supabase import create_client

from config import CONFIG_FILE, ConfigError, ensure_client_credentials, load_config
from logging_config import setup_logging
from main import VERSION, create_app, load_environment

EXIT_CONFIG_ERROR = 2


def _mask(value: str) -> str:
    if not value:
        return "(not set)"
    return value[:4] + "..." if len(value) > 8 else "***"


def _prepare_config():
    """Load config, create client credentials on first run, and validate."""
    load_environment()
    config = load_config()
    if ensure_client_credentials(config):
        print(f"Generated new OAuth client credentials in {os.getenv('SUPPORT_OAUTH_CONFIG') or CONFIG_FILE}")
    config.validate()
    return config


def cmd_serve(host: str = None, port: int = None):
    """Validate configuration, then run the server in the foreground."""
    try:
        config = _prepare_config()
    except ConfigError as e:
        print(f"[X] Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    supabase_client = None
    if config.log_to_supabase and config.supabase_url and config.supabase_key:
        supabase_client = create_client(config.supabase_url, config.supabase_key)
    setup_logging(
        service_name=config.service_name,
        supabase_client=supabase_client,
        secrets=[config.client_secret, config.portal_jwt_secret, config.account_service_token],
    )

    app = create_app(config)
    uvicorn.run(
        app,
        host=host or os.getenv("HOST", "0.0.0.0"),
        port=port or int(os.getenv("PORT", "8080")),
    )


def cmd_check():
    """Validate configuration without starting the server."""
    try:
        _prepare_config()
    except ConfigError as e:
        print(f"[X] Configuration error: {e}")
        sys.exit(EXIT_CONFIG_ERROR)
    print("[OK] Configuration is valid")


def cmd_status():
    """Show current configuration (secrets masked)."""
    load_environment()
    try:
        config = load_config()
    except ConfigError as e:
        print(f"[X] Configuration error: {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    print("\n" + "=" * 50)
    print("  Support OAuth Server Status")
    print("=" * 50)

    print("\n[Client]")
    print(f"  Client ID:     {config.client_id or '(not set)'}")
    print(f"  Client secret: {_mask(config.client_secret)}")
    print(f"  Portal URL:    {config.support_portal_url or '(not set)'}")
    print(f"  Mailbox ID:    {config.mailbox_id or '(not set)'}")

    print("\n[Accounts]")
    if config.account_service_url:
        print(f"  Backend:  HTTP ({config.account_service_url})")
    elif config.supabase_url:
        print(f"  Backend:  Supabase table '{config.accounts_table}'")
    else:
        print("  Backend:  Not configured")
    print(f"  Timeout:  {config.data.get('account_lookup_timeout', 5.0)}s")

    print("\n[Routes]")
    print(f"  Prefix:   {config.route_prefix or '/'}")

    print("\n[Config]")
    try:
        config.validate()
        print("  Valid:    yes")
    except ConfigError as e:
        print(f"  Valid:    no ({e})")
    print(f"  File:     {os.getenv('SUPPORT_OAUTH_CONFIG') or CONFIG_FILE}")

    print("\n" + "=" * 50 + "\n")


def cmd_credentials(show_secret: bool = False):
    """Print the client credentials to enter in the support portal."""
    try:
        config = _prepare_config()
    except ConfigError as e:
        print(f"[X] Configuration error: {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    print(f"client_id:     {config.client_id}")
    if show_secret:
        print(f"client_secret: {config.client_secret}")
    else:
        print(f"client_secret: {_mask(config.client_secret)}  (use --show-secret to reveal)")


def cmd_version():
    """Show version information."""
    print(f"support-oauth v{VERSION}")


def main(argv=None):
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        prog="support-oauth",
        description="Support portal OAuth 2.0 / OpenID Connect server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  serve        Run the server (default)
  check        Validate configuration and exit
  status       Show current configuration
  credentials  Show the OAuth client credentials
  version      Show version

Examples:
  support-oauth serve --port 8080
  support-oauth credentials --show-secret
"""
    )

    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=["serve", "check", "status", "credentials", "version"],
        help="Command to run (default: serve)"
    )
    parser.add_argument("--host", help="Bind address (default: $HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port (default: $PORT or 8080)")
    parser.add_argument("--show-secret", action="store_true", help="Print the client secret")

    args = parser.parse_args(argv)

    if args.command == "serve":
        cmd_serve(args.host, args.port)
    elif args.command == "check":
        cmd_check()
    elif args.command == "status":
        cmd_status()
    elif args.command == "credentials":
        cmd_credentials(args.show_secret)
    elif args.command == "version":
        cmd_version()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
