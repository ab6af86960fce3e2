import os
import unittest
from unittest.mock import MagicMock, patch

from docrepo.domain.exceptions import ConfigurationException
from docrepo.infrastructure.database import MongoConfig, create_client, get_collection, load_config


class TestLoadConfig(unittest.TestCase):
    def test_reads_settings_from_environment(self) -> None:
        env = {
            "MONGO_CONNECTION_STRING": "mongodb://localhost:27017",
            "MONGO_USER": "app",
            "MONGO_PASSWORD": "secret",
            "MONGO_DATABASE": "catalog",
        }

        with patch("docrepo.infrastructure.database.load_dotenv"), \
                patch.dict(os.environ, env, clear=True):
            config = load_config()

        self.assertEqual(config.connection_string, "mongodb://localhost:27017")
        self.assertEqual(config.user, "app")
        self.assertEqual(config.password, "secret")
        self.assertEqual(config.database, "catalog")

    def test_blank_optional_settings_become_none(self) -> None:
        env = {"MONGO_CONNECTION_STRING": "mongodb://localhost", "MONGO_USER": ""}

        with patch("docrepo.infrastructure.database.load_dotenv"), \
                patch.dict(os.environ, env, clear=True):
            config = load_config()

        self.assertIsNone(config.user)
        self.assertIsNone(config.database)

    def test_missing_connection_string_raises(self) -> None:
        with patch("docrepo.infrastructure.database.load_dotenv"), \
                patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ConfigurationException):
                load_config()


class TestCreateClient(unittest.TestCase):
    def test_credentials_are_passed_when_set(self) -> None:
        config = MongoConfig(connection_string="mongodb://db", user="app", password="secret")

        with patch("docrepo.infrastructure.database.AsyncIOMotorClient") as client_cls:
            create_client(config)

        client_cls.assert_called_once_with("mongodb://db", username="app", password="secret")

    def test_credentials_are_omitted_when_unset(self) -> None:
        config = MongoConfig(connection_string="mongodb://app:secret@db/catalog")

        with patch("docrepo.infrastructure.database.AsyncIOMotorClient") as client_cls:
            create_client(config)

        client_cls.assert_called_once_with("mongodb://app:secret@db/catalog")


class TestGetCollection(unittest.TestCase):
    def test_uses_configured_database(self) -> None:
        client = MagicMock()
        config = MongoConfig(connection_string="mongodb://db", database="catalog")

        collection = get_collection(client, config, "widgets")

        client.__getitem__.assert_called_once_with("catalog")
        self.assertIs(collection, client["catalog"]["widgets"])

    def test_falls_back_to_default_database(self) -> None:
        client = MagicMock()
        config = MongoConfig(connection_string="mongodb://db/catalog")

        get_collection(client, config, "widgets")

        client.get_default_database.assert_called_once_with()
        client.get_default_database.return_value.__getitem__.assert_called_once_with("widgets")
