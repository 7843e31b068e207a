from dotenv import load_dotenv
import os

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///zaanet.db")
JWT_SECRET = os.getenv("JWT_SECRET", "zaanet-dev-secret-change-in-production")

RPC_URL = os.getenv("RPC_URL")
CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS")
SYNC_LOOKBACK_BLOCKS = int(os.getenv("SYNC_LOOKBACK_BLOCKS", 1000))

SYNC_ENABLED = os.getenv("SYNC_ENABLED", "False") == "True"
SYNC_INTERVAL_MINUTES = int(os.getenv("SYNC_INTERVAL_MINUTES", 1))
PENDING_SESSION_TTL_HOURS = int(os.getenv("PENDING_SESSION_TTL_HOURS", 72))

IPFS_GATEWAY = os.getenv("IPFS_GATEWAY", "https://ipfs.io/ipfs")
ADMIN_ALLOWED_IPS = [ip.strip() for ip in os.getenv("ADMIN_ALLOWED_IPS", "127.0.0.1,::1,172.18.0.1").split(",") if ip.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 5000))
