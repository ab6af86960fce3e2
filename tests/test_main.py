import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from docrepo.domain.exceptions import ConfigurationException
from docrepo.domain.models import ListOptions, Page
from docrepo import main as entry


class TestMain(unittest.IsolatedAsyncioTestCase):
    async def test_missing_collection_argument_exits(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            await entry.main([])

        self.assertEqual(ctx.exception.code, 2)

    async def test_missing_configuration_exits(self) -> None:
        with patch("docrepo.main.load_config", side_effect=ConfigurationException("missing")):
            with self.assertRaises(SystemExit) as ctx:
                await entry.main(["widgets"])

        self.assertEqual(ctx.exception.code, 1)

    async def test_lists_requested_page(self) -> None:
        client = MagicMock()
        repository = MagicMock()
        repository.find_all = AsyncMock(return_value=Page(
            total=3, limit=2, page=2, total_pages=2, data=[{"_id": "c", "id": "c"}],
        ))

        with patch("docrepo.main.load_config"), \
                patch("docrepo.main.create_client", return_value=client), \
                patch("docrepo.main.get_collection") as get_collection, \
                patch("docrepo.main.BaseRepository", return_value=repository) as repository_cls:
            await entry.main(["widgets", "2", "2"])

        get_collection.assert_called_once()
        self.assertEqual(get_collection.call_args.args[2], "widgets")
        repository_cls.assert_called_once_with(get_collection.return_value)
        repository.find_all.assert_awaited_once_with({}, ListOptions(page=2, limit=2))
        client.close.assert_called_once_with()

    async def test_store_error_exits_and_closes_client(self) -> None:
        client = MagicMock()
        repository = MagicMock()
        repository.find_all = AsyncMock(side_effect=RuntimeError("boom"))

        with patch("docrepo.main.load_config"), \
                patch("docrepo.main.create_client", return_value=client), \
                patch("docrepo.main.get_collection"), \
                patch("docrepo.main.BaseRepository", return_value=repository):
            with self.assertRaises(SystemExit) as ctx:
                await entry.main(["widgets"])

        self.assertEqual(ctx.exception.code, 1)
        client.close.assert_called_once_with()
