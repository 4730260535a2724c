import os
import yaml
from pathlib import Path
from dotenv import load_dotenv

class Config:
    def __init__(self):
        # Load appropriate .env file based on environment
        self.env = os.getenv("QUIBIT_ENV", "dev")
        self._load_env_file()

        self.quality_keywords_file = Path(os.getenv("QUALITY_KEYWORDS_FILE", "quality_keywords.yaml"))

        # Gemini settings (primary provider)
        self.gemini_api_key = os.getenv("GEMINI_API_KEY")
        self.gemini_models = [
            m.strip()
            for m in os.getenv("GEMINI_MODELS", "gemini-2.5-flash,gemini-2.0-flash").split(",")
            if m.strip()
        ]

        # Hugging Face router settings (fallback provider)
        self.hf_token = os.getenv("HF_TOKEN")
        self.hf_model = os.getenv("HF_MODEL", "moonshotai/Kimi-K2-Instruct-0905")
        self.hf_base_url = os.getenv("HF_BASE_URL", "https://router.huggingface.co/v1")

        self.provider_timeout = float(os.getenv("PROVIDER_TIMEOUT", 60))

        # Storage settings
        self.store = os.getenv("QUIBIT_STORE", "sqlite").lower()
        self.sqlite_path = os.getenv("SQLITE_PATH", "data/quibit.db")

        # MongoDB settings
        self.mongo_uri = os.getenv("MONGO_URI")
        self.mongo_db_name = os.getenv("MONGO_DB_NAME", "quibit")

        # Logging settings
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_format = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        # Similarity scoring strategy; thresholds are read per session
        self.similarity_strategy = os.getenv("SIMILARITY_STRATEGY", "jaccard").lower()

        # Extra quality-gate keywords from YAML
        self.quality_keywords = self._load_quality_keywords()

    def _load_env_file(self):
        """Load .env, or .env.<QUIBIT_ENV> when running outside dev."""
        env_file = Path(".env")
        if self.env != "dev":
            candidate = Path(f".env.{self.env}")
            if candidate.exists():
                env_file = candidate
            else:
                print(f"Warning: {candidate} not found, using .env")

        # Variables already set in the process win over the file
        load_dotenv(env_file, override=False)

    def _load_quality_keywords(self):
        """Load keyword list extensions for the quality gate from YAML."""
        if not self.quality_keywords_file.exists():
            return {}

        with open(self.quality_keywords_file, 'r') as file:
            keywords_config = yaml.safe_load(file) or {}
            return {
                name: [str(k).lower() for k in keywords]
                for name, keywords in keywords_config.get('keywords', {}).items()
                if keywords
            }

# Create a global config instance
config = Config()
