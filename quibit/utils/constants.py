"""Constants used throughout the application."""

# Similarity thresholds
SIMILARITY_ACCEPTABLE_MAX = 0.55
SIMILARITY_TOO_SIMILAR_MAX = 0.75
SIMILARITY_LOOKBACK_N = 50

# Weighted DNA similarity
DNA_WEIGHT_APP_TYPE = 0.20
DNA_WEIGHT_PRIMARY_DOMAIN = 0.30
DNA_WEIGHT_CORE_TECH_STACK = 0.25
DNA_WEIGHT_ARCHITECTURAL_STYLE = 0.15
DNA_WEIGHT_COMPLEXITY = 0.10

# Retry bounds
MAX_QUALITY_ATTEMPTS = 4
MAX_CONTRACT_ATTEMPTS = 3

# Provider error text is truncated to this many characters
MAX_PROVIDER_ERROR_CHARS = 2000

COMPLEXITY_LEVELS = ["beginner", "intermediate", "advanced"]

# Tokens in a requested technology that say nothing about the technology itself
TECH_DESCRIPTORS = {"frontend", "backend", "api", "mvc", "fullstack", "monolith", "service"}

GEMINI_TEMPERATURE = 0.7
