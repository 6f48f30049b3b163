"""
Cloud provider calls made while deleting stemcells and orphan disks.

Only AWS is supported: disks are EBS volumes and stemcells are AMIs.
"""

from typing import Any, Callable, Dict, Optional, TypeVar

import boto3
from botocore.exceptions import ClientError

from utils.error_utils import create_deletion_error, create_not_found_error
from utils.logging_utils import get_logger
from utils.retry_utils import retry_operation

T = TypeVar("T")

NOT_FOUND_CODES = {
    "InvalidVolume.NotFound",
    "InvalidAMIID.NotFound",
    "InvalidAMIID.Unavailable",
}


def get_ec2_client(region_name: str):
    return boto3.client("ec2", region_name=region_name)


class AwsCloudClient:
    """Deletes EBS volumes and AMIs, mapping AWS errors onto cleanup errors"""

    def __init__(self, region: str, client=None, retry_settings: Optional[Dict[str, Any]] = None):
        self.region = region
        self.client = client or get_ec2_client(region)
        self.retry_settings = retry_settings or {"max_retries": 0}
        self.logger = get_logger(self.__class__.__name__)

    @classmethod
    def from_config(cls, config_manager) -> "AwsCloudClient":
        return cls(config_manager.get_cloud_region(), retry_settings=config_manager.get_retry_settings())

    def _call(self, kind: str, cid: str, operation: Callable[[], T]) -> T:
        try:
            return retry_operation(operation, operation_name=f"delete {kind} {cid}", **self.retry_settings)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in NOT_FOUND_CODES:
                raise create_not_found_error(kind, cid) from e
            raise create_deletion_error(kind, cid, e) from e

    def delete_disk(self, disk_cid: str) -> None:
        self.logger.info(f"Deleting disk {disk_cid} in {self.region}")
        self._call("disk", disk_cid, lambda: self.client.delete_volume(VolumeId=disk_cid))

    def delete_stemcell(self, stemcell_cid: str) -> None:
        self.logger.info(f"Deregistering stemcell image {stemcell_cid} in {self.region}")
        self._call("stemcell", stemcell_cid, lambda: self.client.deregister_image(ImageId=stemcell_cid))


def create_cloud_client(config_manager):
    """Build the cloud client for the configured provider"""
    provider = config_manager.get_cloud_provider()
    if provider == "aws":
        return AwsCloudClient.from_config(config_manager)
    raise ValueError(f"Unsupported cloud provider: {provider}")
