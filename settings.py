import os
from dotenv import load_dotenv

load_dotenv()

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/shop")
DATABASE_NAME = os.getenv("DATABASE_NAME", "shop")
PORT = int(os.getenv("PORT", 5000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Cloudinary credentials
CLOUD_NAME = os.getenv("CLOUD_NAME")
API_KEY = os.getenv("API_KEY")
API_SECRET = os.getenv("API_SECRET")

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 10))
