import os

# Required settings, set before app.main is imported
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("SALT_ROUNDS", "4")
