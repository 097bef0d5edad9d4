from pydantic_settings import BaseSettings
from pydantic import Field

class Settings(BaseSettings):
    app_name: str = "BrokerBridge"
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Outbound broker calls: one round trip each, no retry inside the core
    request_timeout: float = Field(10.0, alias="BROKER_REQUEST_TIMEOUT")

    # Caller-side retry, applied to read operations only
    retry_attempts: int = Field(3, alias="RETRY_ATTEMPTS")
    retry_base_delay: float = Field(1.0, alias="RETRY_BASE_DELAY")

    # AliceBlue
    aliceblue_base_url: str = Field("https://ant.aliceblueonline.com/rest/AliceBlueAPIService/api", alias="ALICEBLUE_BASE_URL")
    aliceblue_device_number: str = Field("brokerbridge", alias="ALICEBLUE_DEVICE_NUMBER")

    # Angel Broking (SmartAPI)
    angel_base_url: str = Field("https://apiconnect.angelone.in", alias="ANGEL_BASE_URL")
    angel_api_key: str | None = Field(default=None, alias="ANGEL_API_KEY")
    angel_client_local_ip: str = Field("127.0.0.1", alias="ANGEL_CLIENT_LOCAL_IP")
    angel_client_public_ip: str = Field("127.0.0.1", alias="ANGEL_CLIENT_PUBLIC_IP")
    angel_mac_address: str = Field("00:00:00:00:00:00", alias="ANGEL_MAC_ADDRESS")

    # Fyers (API v3)
    fyers_base_url: str = Field("https://api-t1.fyers.in", alias="FYERS_BASE_URL")
    fyers_app_id: str | None = Field(default=None, alias="FYERS_APP_ID")

    # Upstox (v2); sandbox only accepts order endpoints
    upstox_base_url: str = Field("https://api.upstox.com/v2", alias="UPSTOX_BASE_URL")
    upstox_sandbox_url: str = Field("https://api-sandbox.upstox.com/v2", alias="UPSTOX_SANDBOX_URL")
    upstox_sandbox: bool = Field(False, alias="UPSTOX_SANDBOX")

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

settings = Settings()
