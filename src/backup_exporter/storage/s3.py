from typing import Any, Dict, Optional

import aioboto3

from backup_exporter.model.listing import ListingResult, ObjectRecord
from backup_exporter.storage.base import ListingClient


class S3ListingClient(ListingClient):
    """Context-managed S3 client that lists objects across all result pages."""

    def __init__(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        region: str,
        page_size: int = 1000,
        session: Optional[aioboto3.Session] = None,
    ):
        """Persist S3 connection settings.

        :param endpoint_url: S3-compatible endpoint URL.
        :param access_key: Access key id.
        :param secret_key: Secret access key.
        :param region: Region name passed to the signer.
        :param page_size: ``MaxKeys`` requested per page.
        :param session: Optional pre-built ``aioboto3.Session``.
        """
        self.endpoint_url = endpoint_url
        self.region = region
        self.page_size = page_size
        self._session = session or aioboto3.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )
        self._client_cm = None
        self.client = None

    async def __aenter__(self) -> "S3ListingClient":
        """Open the underlying aioboto3 S3 client and return ``self``."""
        self._client_cm = self._session.client("s3", endpoint_url=self.endpoint_url, region_name=self.region)
        self.client = await self._client_cm.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the S3 client after use."""
        if self._client_cm is not None:
            await self._client_cm.__aexit__(exc_type, exc_val, exc_tb)
        self._client_cm = None
        self.client = None

    async def list(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        delimiter: Optional[str] = None,
    ) -> ListingResult:
        """List ``bucket`` with ``ListObjectsV2``, following continuation tokens.

        :param bucket: Bucket name.
        :param prefix: Optional key prefix restricting the listing.
        :param delimiter: Optional delimiter; child prefixes land in ``common_prefixes``.
        :return: Objects and child prefixes from every page.
        """
        if self.client is None:
            raise RuntimeError("S3ListingClient used outside of 'async with'")

        params: Dict[str, Any] = {"Bucket": bucket, "MaxKeys": self.page_size}
        if prefix:
            params["Prefix"] = prefix
        if delimiter:
            params["Delimiter"] = delimiter

        result = ListingResult()
        while True:
            resp = await self.client.list_objects_v2(**params)
            result.objects.extend(ObjectRecord.from_s3(item) for item in resp.get("Contents") or [])
            result.common_prefixes.extend(
                item["Prefix"] for item in resp.get("CommonPrefixes") or [] if item.get("Prefix")
            )

            token = resp.get("NextContinuationToken")
            if not resp.get("IsTruncated") or not token:
                break
            params["ContinuationToken"] = token
        return result
