import os

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = "HS256"
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", 60 * 24))

# CORS
FRONTEND_URL = os.getenv("FRONTEND_URL")
ALLOWED_ORIGINS = [o for o in [FRONTEND_URL, "http://localhost:3000"] if o]

# Pricing (18% GST, free shipping above 500)
TAX_RATE = float(os.getenv("TAX_RATE", 0.18))
FREE_SHIPPING_THRESHOLD = float(os.getenv("FREE_SHIPPING_THRESHOLD", 500))
SHIPPING_FEE = float(os.getenv("SHIPPING_FEE", 50))

# Product list cache
PRODUCT_CACHE_TTL = float(os.getenv("PRODUCT_CACHE_TTL", 300))
PRODUCT_CACHE_MAX_ENTRIES = int(os.getenv("PRODUCT_CACHE_MAX_ENTRIES", 100))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
