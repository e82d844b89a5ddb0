#!/usr/bin/env python3
"""
Mint a capability token for one (site, collection) from the operator's side.

The provider key is read from the site file unless --map-key is given. The
token is printed to stdout; paste it into the widget embed.

Examples:
  LOCATOR_AUTH_SECRET=... python scripts/issue_token.py --site 64f0... --collection 6501...
  LOCATOR_AUTH_SECRET=... python scripts/issue_token.py --site s1 --collection c1 --ttl 86400 --inspect
"""
from __future__ import annotations

import argparse
import json
import os
import sys

# Add the project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.errors import LocatorError
from common.logging_setup import setup_logging
from common.utils import epoch_to_iso
from gateway import tokens
from gateway.config import Settings
from gateway.issuer import TokenIssuer
from gateway.sites import YamlSiteStore


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Issue a store locator capability token")
    ap.add_argument("--config", default=None)
    ap.add_argument("--site", required=True, help="site id")
    ap.add_argument("--collection", default=None, help="collection id (default: the site's selected collection)")
    ap.add_argument("--map-key", default=None, help="provider key; overrides the site file")
    ap.add_argument("--ttl", type=int, default=None, help="lifetime in seconds (default from config)")
    ap.add_argument("--inspect", action="store_true", help="also print the decoded header/payload to stderr")
    args = ap.parse_args(argv)

    setup_logging("WARNING", stream=sys.stderr, force=True)
    settings = Settings.load(args.config)
    if not settings.auth_secret:
        print("LOCATOR_AUTH_SECRET is not set", file=sys.stderr)
        return 2

    sites = YamlSiteStore(settings.sites_file)
    issuer = TokenIssuer(settings.auth_secret, sites=sites, default_ttl=settings.token_ttl_seconds)
    site = sites.get(args.site)
    collection = args.collection or (site.selected_collection_id if site else None)

    try:
        if args.map_key:
            token = issuer.issue(args.site, collection or "", args.map_key, args.ttl)
        else:
            token = issuer.issue_for_site(args.site, collection or "", args.ttl)
    except LocatorError as e:
        print(f"{e.kind}: {e.detail}", file=sys.stderr)
        return 1

    print(token)
    if args.inspect:
        info = tokens.inspect(token)
        info["payload"]["mapboxToken"] = "***"
        info["expires"] = epoch_to_iso(info["payload"]["exp"])
        print(json.dumps(info, indent=2), file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
