"""
Central configuration for the badge generator.

Values come from the environment (a local ``.env`` is honoured); keep this
module free of secrets and side effects beyond reading them.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Supabase (template store, object store, history, print log)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY", "")
BADGE_BUCKET = os.getenv("BADGE_BUCKET", "badges")
TEMPLATE_BUCKET = os.getenv("TEMPLATE_BUCKET", "templates")
PHOTO_BUCKET = os.getenv("PHOTO_BUCKET", "photos")

# Fonts (empty -> search system locations, then Pillow's bundled font)
BADGE_FONT_REGULAR = os.getenv("BADGE_FONT_REGULAR", "")
BADGE_FONT_BOLD = os.getenv("BADGE_FONT_BOLD", "")

# Back template shape for this deployment: auto | rich | labeled
BADGE_BACK_VARIANT = os.getenv("BADGE_BACK_VARIANT", "auto").strip().lower()

# Admission date on the back face
BADGE_TIMEZONE = os.getenv("BADGE_TIMEZONE", "America/Sao_Paulo")

# Remote photo/background downloads
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "15"))

# Printed badge size (CR80 portrait)
PDF_PAGE_W_MM = float(os.getenv("PDF_PAGE_W_MM", "54"))
PDF_PAGE_H_MM = float(os.getenv("PDF_PAGE_H_MM", "85.6"))

# Rasterization of PDF backgrounds
PDF_RASTER_DPI = int(os.getenv("PDF_RASTER_DPI", "300"))

BADGE_LOG_LEVEL = os.getenv("BADGE_LOG_LEVEL", "INFO").upper()
