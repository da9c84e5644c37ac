"""Configuration management for the Deep Focus document Q&A service."""
import os
import logging
from dotenv import load_dotenv

from logger import setup_logging

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Model Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-mpnet-base-v2")
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama-3.3-70b-versatile")
EXPANSION_MODEL = os.getenv("EXPANSION_MODEL", "llama-3.1-8b-instant")

# Storage Configuration
DOCS_DIRECTORY = os.getenv("DOCS_DIRECTORY", ".local-storage/documents")
INDEXES_DIR = os.getenv("INDEXES_DIR", ".local-storage/indexes")
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory")  # "memory" or "supabase"

# Chunking Configuration
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "800"))  # tokens
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "100"))  # words carried into the next chunk
CHARS_PER_TOKEN = 4
EMBEDDING_BATCH_SIZE = 100
INDEX_WORKERS = int(os.getenv("INDEX_WORKERS", "2"))

# Retrieval Configuration
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "8"))
MMR_LAMBDA = float(os.getenv("MMR_LAMBDA", "0.3"))
MAX_CONTEXT_TOKENS = int(os.getenv("MAX_CONTEXT_TOKENS", "1600"))

# Prompt / Memory Configuration
MAX_PROMPT_TOKENS = 2800
MEMORY_TOKEN_THRESHOLD = 2500
MEMORY_MAX_MESSAGES = 100
MEMORY_RECENT_MESSAGES = 10

# Logging Configuration
if LOG_FORMAT == "json":
    setup_logging(LOG_LEVEL)
else:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
