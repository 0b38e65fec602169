"""
Service management API client.

Wraps a ManagementSession with the logic that turns asynchronous Azure
operations into blocking calls, and the delete operations used to tear
down deployments, where a resource that is already gone counts as deleted.

Reference: http://msdn.microsoft.com/en-us/library/windowsazure/ff800682.aspx

Author: AzureKit Team
Date: 2026-01-28
"""

import logging
import re
import time
from http import HTTPStatus
from typing import TYPE_CHECKING, Callable, Optional

from azurekit.core.logging_config import log_with_context
from azurekit.exceptions import AzureKitError
from azurekit.management.operations import Operation
from azurekit.management.poller import (
    OPERATIONS_API_VERSION,
    OperationPoller,
    Poller,
    perform_operation_polling,
    perform_polling,
)
from azurekit.management.session import ManagementSession
from azurekit.transport.errors import (
    HTTPError,
    ProviderError,
    is_not_found_error,
    new_http_error,
    new_provider_error_from_operation,
)
from azurekit.transport.http import HTTPResponse
from azurekit.transport.metrics import ClientMetrics
from azurekit.transport.retry_policy import NO_RETRY_POLICY, RetryPolicy
from azurekit.utils import add_url_query_params, check_path_components

if TYPE_CHECKING:
    from azurekit.core.config_manager import AzureKitConfig

logger = logging.getLogger(__name__)

DEFAULT_POLLER_INTERVAL = 10.0
DEFAULT_POLLER_TIMEOUT = 20 * 60.0

# Disks detached from a deleted VM stay "in use" for an unpredictable time.
DELETE_DISK_INTERVAL = 10.0
DELETE_DISK_TIMEOUT = 30 * 60.0

OPERATION_ID_HEADER = "x-ms-request-id"


class ManagementAPI:
    """
    Client for the Azure service management API.

    Setting ``poller_interval`` to 0 disables polling: asynchronous
    operations are then reported complete as soon as they are accepted.
    """

    def __init__(
        self,
        session: ManagementSession,
        poller_interval: float = DEFAULT_POLLER_INTERVAL,
        poller_timeout: float = DEFAULT_POLLER_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[ClientMetrics] = None,
    ):
        self.session = session
        self.poller_interval = poller_interval
        self.poller_timeout = poller_timeout
        self._sleep = sleep
        self._clock = clock
        self.metrics = metrics

    @classmethod
    def create(
        cls,
        subscription_id: str,
        cert_file: str,
        location: str,
        retry_policy: RetryPolicy = NO_RETRY_POLICY,
    ) -> "ManagementAPI":
        """Build an API client with a certificate-authenticated session."""
        session = ManagementSession(
            subscription_id, cert_file=cert_file, location=location, retry_policy=retry_policy
        )
        return cls(session)

    @classmethod
    def from_config(cls, config: "AzureKitConfig", **kwargs) -> "ManagementAPI":
        """
        Build an API client from a configuration.

        Keyword arguments are passed to the ManagementSession, e.g. a
        transport for tests.
        """
        session = ManagementSession(
            config.management.subscription_id,
            cert_file=config.management.cert_file,
            location=config.management.location,
            retry_policy=config.retry.to_policy(),
            **kwargs,
        )
        return cls(
            session,
            poller_interval=config.poller.interval,
            poller_timeout=config.poller.timeout,
        )

    def get_retry_policy(self) -> RetryPolicy:
        return self.session.retry_policy

    def _polling_options(self) -> dict:
        return {"sleep": self._sleep, "clock": self._clock, "metrics": self.metrics}

    @staticmethod
    def get_operation_id(response: HTTPResponse) -> str:
        """
        Extract the asynchronous operation ID from a response.

        Raises:
            AzureKitError: If the response has no operation ID header
        """
        operation_id = response.headers.get(OPERATION_ID_HEADER)
        if not operation_id:
            raise AzureKitError(f"no operation header ({OPERATION_ID_HEADER}) found in response")
        return operation_id

    def block_until_completed(self, response: HTTPResponse) -> None:
        """
        Wait for the operation started by a request to finish.

        Returns immediately on a synchronous success. A ``202 Accepted``
        response is polled until its operation reaches a terminal status.

        Args:
            response: Response of the request that started the operation

        Raises:
            HTTPError: If the request failed synchronously
            ProviderError: If the asynchronous operation failed
            PollingTimeoutError: If the operation did not finish in time
        """
        status = response.status_code
        if status in (HTTPStatus.OK, HTTPStatus.CREATED, HTTPStatus.NO_CONTENT):
            return
        if status != HTTPStatus.ACCEPTED:
            raise new_http_error(status, response.body, "request failed")

        if self.poller_interval == 0:
            logger.debug("Polling disabled, not waiting for asynchronous operation")
            return

        try:
            operation_id = self.get_operation_id(response)
        except AzureKitError as exc:
            raise AzureKitError(f"could not interpret asynchronous response: {exc}") from exc

        log_with_context(
            logger, logging.INFO, "Waiting for asynchronous operation",
            operation_id=operation_id, interval=self.poller_interval, timeout=self.poller_timeout,
        )
        operation = perform_operation_polling(
            OperationPoller(self.session, operation_id),
            self.poller_interval,
            self.poller_timeout,
            **self._polling_options(),
        )
        if not operation.succeeded:
            raise new_provider_error_from_operation(operation)
        logger.info(f"Asynchronous operation {operation_id} succeeded")

    def get_operation(self, operation_id: str) -> Operation:
        """
        Fetch the current status of an asynchronous operation.

        See http://msdn.microsoft.com/en-us/library/windowsazure/ee460783.aspx
        """
        check_path_components(operation_id)
        response = self.session.get("operations/" + operation_id, OPERATIONS_API_VERSION)
        return Operation.deserialize(response.body)

    def _delete(self, path: str, api_version: str) -> None:
        """DELETE a resource and wait for completion; a missing one is fine."""
        try:
            response = self.session.delete(path, api_version)
        except HTTPError as exc:
            if is_not_found_error(exc):
                logger.debug(f"{path} does not exist, nothing to delete")
                return
            raise
        self.block_until_completed(response)

    def delete_hosted_service(self, service_name: str) -> None:
        """
        Delete the named hosted service.

        See http://msdn.microsoft.com/en-us/library/windowsazure/gg441305.aspx
        """
        check_path_components(service_name)
        self._delete("services/hostedservices/" + service_name, "2010-10-28")

    def delete_deployment(self, service_name: str, deployment_name: str) -> None:
        """
        Delete the named deployment from the named hosted service.

        See http://msdn.microsoft.com/en-us/library/windowsazure/ee460815.aspx
        """
        check_path_components(service_name, deployment_name)
        path = f"services/hostedservices/{service_name}/deployments/{deployment_name}"
        self._delete(path, "2013-10-01")

    def delete_storage_account(self, account_name: str) -> None:
        """
        Delete a storage account.

        See http://msdn.microsoft.com/en-us/library/windowsazure/hh264517.aspx
        """
        check_path_components(account_name)
        self._delete("services/storageservices/" + account_name, "2011-06-01")

    def delete_disk(self, disk_name: str, delete_blob: bool = False) -> None:
        """
        Delete the named OS or data disk, optionally with its blob.

        A disk that was attached to a recently deleted VM is reported "in
        use" for a while; deletion is retried until that clears or
        DELETE_DISK_TIMEOUT elapses.

        See http://msdn.microsoft.com/en-us/library/windowsazure/jj157200.aspx
        """
        check_path_components(disk_name)
        perform_polling(
            DiskDeletePoller(self, disk_name, delete_blob),
            DELETE_DISK_INTERVAL,
            DELETE_DISK_TIMEOUT,
            **self._polling_options(),
        )

    def _delete_disk(self, disk_name: str, delete_blob: bool) -> None:
        path = "services/disks/" + disk_name
        if delete_blob:
            path = add_url_query_params(path, "comp", "media")
        self._delete(path, "2012-08-01")


def is_disk_in_use_error(error: Exception, disk_name: str) -> bool:
    """Whether an error says the disk is still attached to a virtual machine."""
    if not isinstance(error, ProviderError) or error.code != "BadRequest":
        return False
    pattern = f"A disk with name {re.escape(disk_name)} is currently in use by virtual machine"
    return re.match(pattern, error.provider_message) is not None


class DiskDeletePoller(Poller):
    """Retries a disk deletion for as long as the disk is reported in use."""

    def __init__(self, api: ManagementAPI, disk_name: str, delete_blob: bool):
        self.api = api
        self.disk_name = disk_name
        self.delete_blob = delete_blob

    def poll(self) -> None:
        self.api._delete_disk(self.disk_name, self.delete_blob)

    def is_done(self, response: Optional[HTTPResponse], error: Optional[Exception]) -> bool:
        if error is None:
            return True
        if is_disk_in_use_error(error, self.disk_name):
            logger.info(f"Disk {self.disk_name} is still in use, retrying deletion")
            return False
        raise error
