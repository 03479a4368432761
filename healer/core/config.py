"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    ANTHROPIC_API_KEY    — Primary policy provider API key (Anthropic Messages API)
    GROQ_API_KEY         — Fallback policy provider API key (OpenAI-compatible)
    POSTMAN_API_KEY      — Collection-storage backend credential
    PARALLEL_API_KEY     — Documentation search credential
    MAX_ITERATIONS       — Max policy turns per healing session (default: 20)
    FIX_CACHE_DB_PATH    — Durable store for learned fixes (default: ./data/fix_cache.db)

Iteration Cap:
    MAX_ITERATIONS is the only cancellation point of a healing session.
    When reached, the session ends with the "max-iterations" outcome and a
    fixed message instead of an error.

Fix Cache:
    CACHE_TOP_K bounds the nearest-neighbour candidate set before the
    CACHE_MAX_DISTANCE filter is applied. Distances are squared L2 over
    normalized embeddings, so they fall in [0, 4].

Network Timeouts:
    HTTP_TIMEOUT_SECONDS applies to every outbound collaborator (policy
    providers, collection backend, docs search, candidate execution).
"""
import os
from dotenv import load_dotenv

load_dotenv()

# Policy providers
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-3-5-sonnet-20241022")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
POLICY_MAX_TOKENS = int(os.getenv("POLICY_MAX_TOKENS", 4096))

# Collaborators
POSTMAN_API_KEY = os.getenv("POSTMAN_API_KEY")
POSTMAN_BASE_URL = os.getenv("POSTMAN_BASE_URL", "https://api.getpostman.com")
PARALLEL_API_KEY = os.getenv("PARALLEL_API_KEY")
PARALLEL_BASE_URL = os.getenv("PARALLEL_BASE_URL", "https://api.parallel.ai/v1beta")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", 30))

# Default healing target for the command-line entry point
POSTMAN_COLLECTION_ID = os.getenv("POSTMAN_COLLECTION_ID")
POSTMAN_REQUEST_ID = os.getenv("POSTMAN_REQUEST_ID")

# Identifier normalization strategy: owner_prefix | none
REQUEST_ID_NORMALIZER = os.getenv("REQUEST_ID_NORMALIZER", "owner_prefix")

# Healing loop
MAX_ITERATIONS = int(os.getenv("MAX_ITERATIONS", 20))

# Fix cache
CACHE_TOP_K = int(os.getenv("CACHE_TOP_K", 3))
CACHE_MAX_DISTANCE = float(os.getenv("CACHE_MAX_DISTANCE", 0.5))
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "sentence_transformers")  # sentence_transformers|hash
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "sentence-transformers/all-distilroberta-v1")
EMBED_DIMENSION = int(os.getenv("EMBED_DIMENSION", 768))
VECTOR_PROVIDER = os.getenv("VECTOR_PROVIDER", "faiss")  # faiss|memory
FIX_CACHE_DB_PATH = os.getenv("FIX_CACHE_DB_PATH", "./data/fix_cache.db")

# Provider health cooldown
PROVIDER_COOLDOWN_THRESHOLD = int(os.getenv("PROVIDER_COOLDOWN_THRESHOLD", 4))
PROVIDER_COOLDOWN_SKIP_COUNT = int(os.getenv("PROVIDER_COOLDOWN_SKIP_COUNT", 5))

# Output
RESULTS_DIR = os.getenv("RESULTS_DIR", "results")
LOG_DIR = os.getenv("LOG_DIR", "logs")
