from core.exceptions import DatabaseError, PublishConnectionError
from core.logging_config import LoggerMixin
from core.types import PublishResult, PublishStatus, ServerId
from data.server_repository import ServerRepository


class LoadPublisher(LoggerMixin):
    """Writes the load score into the servers row keyed by server id."""

    def __init__(self, repository: ServerRepository):
        self.repository = repository

    def publish(self, server_id: ServerId, load: int) -> PublishResult:
        """
        Update the server's load.

        A missing row or an update that changes nothing is reported through
        the returned status, not raised. Only a database failure raises
        PublishConnectionError.
        """
        log = self.logger.bind(server_id=server_id, load=load)
        try:
            with self.repository.db.session():
                exists = self.repository.server_exists(server_id)
                if not exists:
                    log.warning(
                        "Server ID not found in database; make sure it is registered in the admin panel"
                    )
                rows = self.repository.update_load(server_id, load)
        except DatabaseError as e:
            log.error("Database error while publishing load", error=str(e))
            raise PublishConnectionError(server_id, str(e))

        if not exists:
            return PublishResult(PublishStatus.NOT_FOUND, server_id, load, rows)
        if rows <= 0:
            log.warning("No rows updated for server")
            return PublishResult(PublishStatus.NO_CHANGE, server_id, load, rows)

        log.info("Updated server load", rows_affected=rows)
        return PublishResult(PublishStatus.UPDATED, server_id, load, rows)
