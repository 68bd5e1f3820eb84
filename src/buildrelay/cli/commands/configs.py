"""Build-tools config and show commands."""

from __future__ import annotations

import argparse

from buildrelay import BuildRelayConfig, BuildToolsClient, ConfigListing
from buildrelay.tools import configs_dir


def format_configs(listing: ConfigListing) -> str:
    if not listing.configs:
        return f"no configs in {configs_dir()}"
    lines = [f"{'*' if name == listing.active else ' '} {name}" for name in listing.configs]
    return "\n".join(lines)


async def run_config_command(args: argparse.Namespace, config: BuildRelayConfig) -> str:
    client = BuildToolsClient(config.executable)

    if args.command == "configs":
        output = format_configs(await client.list_configs())
    elif args.command == "use":
        await client.use_config(args.name)
        output = f"Now using config {args.name}"
    elif args.command == "remove":
        await client.remove_config(args.name)
        output = f"Removed config {args.name}"
    elif args.command == "sanitize":
        await client.sanitize_config(args.name)
        output = f"Sanitized config {args.name}"
    else:
        output = await client.show(args.what)

    print(output)
    return output
