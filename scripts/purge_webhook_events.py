from datetime import timedelta

from src.infrastructure.config import WebhookSettings
from src.infrastructure.db.session import get_db_session
from src.infrastructure.repositories.webhook_event_repository import WebhookEventRepository


def main() -> None:
    settings = WebhookSettings.from_env()
    ttl = timedelta(hours=settings.dedupe_ttl_hours)

    with get_db_session() as db:
        removed = WebhookEventRepository(db).purge_expired(ttl)

    print(f"Purged {removed} webhook event records older than {settings.dedupe_ttl_hours}h.")


if __name__ == "__main__":
    main()
