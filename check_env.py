#!/usr/bin/env python3
"""Check the field sales backend configuration and write a template .env when missing."""

import os
import sys
from pathlib import Path

ENV_TEMPLATE = """# Supabase Configuration (required for visits, orders and stock)
FSD_SUPABASE_URL=https://your-project-id.supabase.co
FSD_SUPABASE_KEY=your-service-role-key-here

# API Configuration
FSD_API_PREFIX=/api
# FSD_FRONTEND_ALLOWED_ORIGINS=["http://localhost:3000"]

# Geofencing and pricing
FSD_GEOFENCE_RADIUS_METERS=150
FSD_PTR_MARKUP_DIVISOR=1.3
# FSD_SCHEME_TIERS=[[21, 3], [6, 2], [1, 1]]
FSD_ENFORCE_PARTIAL_PAYMENT_CAP=false
"""


def _mask(value: str) -> str:
    return value[:20] + "..." + value[-6:] if len(value) > 30 else value


def main() -> int:
    project_root = Path(__file__).parent
    env_file = project_root / ".env"

    if not env_file.exists():
        env_file.write_text(ENV_TEMPLATE, encoding="utf-8")
        print(f"❌ .env file not found; wrote a template to {env_file}")
        print("⚠️  Edit it and add your Supabase credentials, then rerun this check.")
        return 1

    print(f"✅ Found .env file at: {env_file}")
    for name in ("FSD_SUPABASE_URL", "FSD_SUPABASE_KEY"):
        value = os.getenv(name)
        print(f"{'✅' if value else '➖'} {name} in environment: {_mask(value) if value else 'not set'}")

    sys.path.insert(0, str(project_root / "src"))
    try:
        from fieldsales.config import settings
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        return 1

    print(f"Geofence radius: {settings.geofence_radius_meters} m")
    print(f"Scheme tiers: {list(settings.scheme_tiers)}")
    if settings.supabase_url and settings.supabase_key:
        print("✅ SUCCESS: Supabase is configured!")
        return 0

    print("❌ ERROR: Supabase is NOT configured")
    print("Make sure variables use the FSD_ prefix and restart the backend after editing .env")
    return 1


if __name__ == "__main__":
    sys.exit(main())
