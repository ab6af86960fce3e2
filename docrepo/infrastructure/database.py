import os
import logging
from typing import Any, Dict, Optional
from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pydantic import BaseModel, ConfigDict, Field

from docrepo.domain.exceptions import ConfigurationException

logger = logging.getLogger(__name__)

class MongoConfig(BaseModel):
    """
    Connection settings for the document store.
    Credentials are optional: they may also be embedded in the connection string.
    """
    model_config = ConfigDict(frozen=True)

    connection_string: str = Field(..., min_length=1, description="mongodb:// or mongodb+srv:// URI")
    user: Optional[str] = Field(None, description="Username, when not part of the URI")
    password: Optional[str] = Field(None, description="Password, when not part of the URI")
    database: Optional[str] = Field(None, description="Database name, defaults to the URI's")

def load_config() -> MongoConfig:
    """
    Reads the connection settings from the environment (and a .env file, if present).

    Raises:
        ConfigurationException: If MONGO_CONNECTION_STRING is not set.
    """
    load_dotenv()

    connection_string = os.getenv("MONGO_CONNECTION_STRING")
    if not connection_string:
        raise ConfigurationException("MONGO_CONNECTION_STRING is not set in the environment.")

    return MongoConfig(
        connection_string=connection_string,
        user=os.getenv("MONGO_USER") or None,
        password=os.getenv("MONGO_PASSWORD") or None,
        database=os.getenv("MONGO_DATABASE") or None,
    )

def create_client(config: MongoConfig) -> AsyncIOMotorClient:
    """Builds a motor client; the driver connects lazily on first use."""
    kwargs: Dict[str, Any] = {}
    if config.user:
        kwargs["username"] = config.user
    if config.password:
        kwargs["password"] = config.password

    logger.info(f"Creating MongoDB client (authenticated: {bool(config.user)}).")
    return AsyncIOMotorClient(config.connection_string, **kwargs)

def get_collection(client: AsyncIOMotorClient, config: MongoConfig, name: str) -> AsyncIOMotorCollection:
    if config.database:
        database = client[config.database]
    else:
        # Raises ConfigurationError when the URI names no database.
        database = client.get_default_database()
    return database[name]
