from dotenv import find_dotenv, load_dotenv
from pydantic_settings import BaseSettings

# Export .env into os.environ too, not only into Settings.
# Resolved from the working directory, like env_file below.
load_dotenv(find_dotenv(usecwd=True))

class Settings(BaseSettings):
    # Normalized (3NF) store loaded from XML
    NORMALIZED_DATABASE_URL: str = "sqlite:///normalized.sqlite"

    # Star schema store
    WAREHOUSE_DATABASE_URL: str = "sqlite:///warehouse.sqlite"

    # XML source files
    TXN_XML_DIR: str = "txn-xml"
    REPS_XML_PATTERN: str = "pharmaReps*.xml"
    TXN_XML_PATTERN: str = "pharmaSalesTxn*.xml"

    #Basic Authentication
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "password123"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
