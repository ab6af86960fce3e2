import asyncio
import sys
import logging

from docrepo.domain.exceptions import ConfigurationException
from docrepo.domain.models import ListOptions
from docrepo.infrastructure.database import create_client, get_collection, load_config
from docrepo.infrastructure.repository import BaseRepository

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

USAGE = "usage: python -m docrepo.main <collection> [page] [limit]"

async def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        logger.error(USAGE)
        sys.exit(2)

    collection_name = argv[0]
    try:
        options = ListOptions(
            page=int(argv[1]) if len(argv) > 1 else 1,
            limit=int(argv[2]) if len(argv) > 2 else 50,
        )
    except ValueError:
        logger.error(USAGE)
        sys.exit(2)

    try:
        config = load_config()
    except ConfigurationException as e:
        logger.error(str(e))
        sys.exit(1)

    client = create_client(config)
    repository = BaseRepository(get_collection(client, config, collection_name))

    try:
        page = await repository.find_all({}, options)
        logger.info(
            f"'{collection_name}': page {page.page}/{page.total_pages}, "
            f"{len(page.data)} of {page.total} documents (limit {page.limit})."
        )
        for entity in page.data:
            logger.info(f"  {entity['id']}")
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        sys.exit(1)
    finally:
        client.close()

if __name__ == "__main__":
    asyncio.run(main())
