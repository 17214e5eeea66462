from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Curriculum: nominal number of sheet rows per level
	scripts_per_level: int = Field(default=50, ge=1, validation_alias="SCRIPTS_PER_LEVEL")
	# Upper bound on rows scanned when counting the whole sheet
	max_script_rows: int = Field(default=10000, ge=1, validation_alias="MAX_SCRIPT_ROWS")

	# Google Sheets (prompt source)
	google_sheets_id: str | None = Field(default=None, validation_alias="GOOGLE_SHEETS_ID")
	google_sheets_tab: str | None = Field(default=None, validation_alias="GOOGLE_SHEETS_TAB")
	# Google Drive (recording storage)
	google_drive_folder_id: str | None = Field(default=None, validation_alias="GOOGLE_DRIVE_FOLDER_ID")
	# OAuth2 refresh-token credentials shared by Sheets and Drive
	google_client_id: str | None = Field(default=None, validation_alias="GOOGLE_CLIENT_ID")
	google_client_secret: str | None = Field(default=None, validation_alias="GOOGLE_CLIENT_SECRET")
	google_refresh_token: str | None = Field(default=None, validation_alias="GOOGLE_REFRESH_TOKEN")

	# Clients poll /sessions/check at this interval
	session_check_interval_seconds: float = Field(default=5.0, gt=0, validation_alias="SESSION_CHECK_INTERVAL_SECONDS")
	# Reject completions whose row index is not the one expected next
	strict_script_check: bool = Field(default=False, validation_alias="STRICT_SCRIPT_CHECK")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

	@property
	def google_credentials_configured(self) -> bool:
		return bool(self.google_client_id and self.google_client_secret and self.google_refresh_token)

	@property
	def sheets_configured(self) -> bool:
		return bool(self.google_sheets_id and self.google_sheets_tab and self.google_credentials_configured)

	@property
	def drive_configured(self) -> bool:
		return bool(self.google_drive_folder_id and self.google_credentials_configured)

settings = Settings()
