"""
Remove a deleted user's chat data from one tenant database.
Run from project root: python -m scripts.purge_chat_user <tenant_id> <user_id>

Deletes the user's room memberships, every message they sent or received, and
rooms left with no members. Called by the user-deletion workflow.
"""
import argparse
import logging
import sys

# Add project root so app imports work
sys.path.insert(0, ".")

from app.core.database import TenantDatabases
from app.core.exceptions import ChatError, TenantConfigError
from app.service.chat_service import ChatService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def purge(databases: TenantDatabases, tenant_id: str, user_id: int) -> dict:
    with databases.session(tenant_id) as db:
        return ChatService(db).purge_user(user_id)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("tenant_id")
    parser.add_argument("user_id", type=int)
    args = parser.parse_args(argv)

    databases = TenantDatabases()
    try:
        counts = purge(databases, args.tenant_id, args.user_id)
    except (ChatError, TenantConfigError) as e:
        logger.error(f"Purge failed: {e}")
        return 1
    finally:
        databases.dispose()
    logger.info(f"Purged user {args.user_id} in tenant {args.tenant_id}: {counts}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
