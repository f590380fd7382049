import os
from dataclasses import dataclass
from dotenv import load_dotenv


@dataclass
class Settings:
	chutes_api_key: str | None = None
	environment: str = "production"
	custom_url: str | None = None
	timeout_sec: float = 600.0
	log_level: str = "INFO"

	def credentials(self) -> dict:
		creds: dict = {"environment": self.environment}
		if self.chutes_api_key:
			creds["api_key"] = self.chutes_api_key
		if self.custom_url:
			creds["custom_url"] = self.custom_url
		return creds


def get_settings() -> Settings:
	# Load .env if present
	load_dotenv(override=False)
	environment = os.getenv("CHUTES_ENVIRONMENT", "production").strip().lower()
	if environment not in ("production", "sandbox"):
		raise ValueError(f"CHUTES_ENVIRONMENT must be production or sandbox, got {environment!r}")
	return Settings(
		chutes_api_key=os.getenv("CHUTES_API_KEY") or None,
		environment=environment,
		custom_url=os.getenv("CHUTES_CUSTOM_URL") or None,
		timeout_sec=float(os.getenv("CHUTES_TIMEOUT_SEC", "600")),
		log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
	)
