"""Configuration module for the textbook page pipeline."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# API Configuration
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
DEEPSEEK_API_KEY = os.getenv("DEEPSEEK_API_KEY")
DEEPSEEK_BASE_URL = os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com")
DEEPSEEK_MODEL = os.getenv("DEEPSEEK_MODEL", "deepseek-chat")

VISION_MODEL = os.getenv("VISION_MODEL", "claude-opus-4-5-20251101")
VISION_FALLBACK_MODEL = os.getenv("VISION_FALLBACK_MODEL", "claude-haiku-4-5-20251001")
DRAFT_MODEL = os.getenv("DRAFT_MODEL", "claude-opus-4-5-20251101")
LLM_TEMPERATURE = 0

# Provider limits
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "120"))
MAX_OUTPUT_TOKENS = int(os.getenv("MAX_OUTPUT_TOKENS", "8192"))
EXTRACTION_MAX_TOKENS = int(os.getenv("EXTRACTION_MAX_TOKENS", "8000"))
FALLBACK_CONFIDENCE_CEILING = 0.7
MIN_EXTRACTED_CHARS = 20
RATE_LIMIT_RETRIES = 3
RATE_LIMIT_BACKOFF_SECONDS = 2.0

# Compliance
ACCEPTANCE_THRESHOLD = 80
MAX_CONTINUATION_ATTEMPTS = 4

# Batch processing
BATCH_PAGE_CAP = 5
MIN_JITTER_SECONDS = 0.8
MAX_JITTER_SECONDS = 1.5
PAGE_RETRIES = 1  # local retries for timeouts and frozen writes
PAGE_RATE_LIMIT_BACKOFF_SECONDS = float(os.getenv("PAGE_RATE_LIMIT_BACKOFF_SECONDS", "5.0"))
PAGE_IMAGE_URL_TEMPLATE = os.getenv("PAGE_IMAGE_URL_TEMPLATE", "")  # {book_id} and {page} placeholders

# RAG Configuration
RAG_ENABLED = os.getenv("RAG_ENABLED", "true").lower() == "true"
RAG_MAX_PAGES = 3
RAG_SIMILARITY_THRESHOLD = 0.4
RAG_MAX_CONTEXT_CHARS = 8000
RAG_STRICT_MAX_PAGES = 5
RAG_STRICT_SIMILARITY_THRESHOLD = 0.3
RAG_STRICT_MAX_CONTEXT_CHARS = 10000
MIN_EMBEDDING_CHARS = 50

# Embedding Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "paraphrase-multilingual-MiniLM-L12-v2")

# Client-side cache
CACHE_MAX_AGE_SECONDS = int(os.getenv("CACHE_MAX_AGE_SECONDS", str(7 * 24 * 3600)))

# Storage Configuration
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", "./output"))
DB_PATH = Path(os.getenv("DB_PATH", str(OUTPUT_DIR / "pages.db")))
CHROMA_PATH = Path(os.getenv("CHROMA_PATH", str(OUTPUT_DIR / "chroma")))
CACHE_DIR = Path(os.getenv("CACHE_DIR", str(OUTPUT_DIR / "cache")))

# Ensure output directories exist
DB_PATH.parent.mkdir(parents=True, exist_ok=True)
