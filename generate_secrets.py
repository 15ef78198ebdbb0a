#!/usr/bin/env python3
"""
Generate secure secrets for the CFB Pick'em scoring service

Prints SECRET_KEY and WTF_CSRF_SECRET_KEY lines. With --write, appends any
key missing from .env instead of printing it.
"""

import secrets
import sys
from pathlib import Path

KEYS = ("SECRET_KEY", "WTF_CSRF_SECRET_KEY")


def generate_secrets():
    """Generate secure random keys for the application"""
    return {key: secrets.token_urlsafe(32) for key in KEYS}


def write_missing(env_path, values):
    """Append keys that are not already present in the env file"""
    existing = env_path.read_text() if env_path.exists() else ""
    present = {
        line.split("=", 1)[0].strip()
        for line in existing.splitlines()
        if "=" in line and not line.lstrip().startswith("#")
    }

    added = []
    with env_path.open("a") as fh:
        if existing and not existing.endswith("\n"):
            fh.write("\n")
        for key, value in values.items():
            if key not in present:
                fh.write(f"{key}={value}\n")
                added.append(key)
    return added


def main():
    values = generate_secrets()

    if "--write" in sys.argv:
        added = write_missing(Path(".env"), values)
        if added:
            print(f"✅ Added {', '.join(added)} to .env")
        else:
            print("✅ .env already defines all secrets")
        return

    print("🔐 Generating secure secrets for CFB Pick'em...")
    print("=" * 50)
    for key, value in values.items():
        print(f"{key}={value}")
    print("=" * 50)
    print("📝 Copy these values to your .env file (or rerun with --write)")


if __name__ == "__main__":
    main()
