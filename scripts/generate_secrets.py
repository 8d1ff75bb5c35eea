#!/usr/bin/env python3
"""
Generate production secrets for AXP Edge Delivery.

Usage:
    python scripts/generate_secrets.py
    python scripts/generate_secrets.py --output .env.production
"""
import base64
import re
import secrets
import sys


def generate_secrets() -> dict[str, str]:
    """Generate all required production secrets."""
    return {
        "SECRET_KEY": secrets.token_urlsafe(48),
        # Credential vault key: exactly 32 random bytes, base64
        "ENCRYPTION_KEY": base64.b64encode(secrets.token_bytes(32)).decode("ascii"),
        "POSTGRES_PASSWORD": secrets.token_urlsafe(32),
    }


def main():
    generated = generate_secrets()

    # If --output specified, patch the file in-place
    if len(sys.argv) >= 3 and sys.argv[1] == "--output":
        target = sys.argv[2]
        try:
            with open(target, "r", encoding="utf-8") as f:
                content = f.read()
        except FileNotFoundError:
            print(f"File not found: {target}")
            sys.exit(1)

        replacements = 0
        for key, value in generated.items():
            # Only fill empty values: KEY=<spaces/comment>
            pattern = rf"^({key}=)\s*(#.*)?$"
            new_content = re.sub(pattern, lambda m: m.group(1) + value, content, flags=re.MULTILINE)
            if new_content != content:
                replacements += 1
                content = new_content

        with open(target, "w", encoding="utf-8") as f:
            f.write(content)

        print(f"Patched {replacements} secrets into {target}")
        print("Remember to also set API_BASE_URL and BACKEND_CORS_ORIGINS.")
        print("Never rotate ENCRYPTION_KEY without re-encrypting stored connections.")
        return

    # Default: just print the secrets
    print("=" * 60)
    print("  AXP Edge Delivery: Generated Production Secrets")
    print("=" * 60)
    for key, value in generated.items():
        print(f"{key}={value}")
    print("=" * 60)


if __name__ == "__main__":
    main()
