import os

import pytest

from spark_cloud import Device, SparkCloud


@pytest.mark.integration
def test_list_devices() -> None:
    cloud = SparkCloud(access_token=os.environ["SPARK_ACCESS_TOKEN"])
    try:
        devices = cloud.list_devices()
    finally:
        cloud.close()

    assert isinstance(devices, list)
    assert all(isinstance(d, Device) for d in devices)


@pytest.mark.integration
def test_refresh_first_device() -> None:
    cloud = SparkCloud(access_token=os.environ["SPARK_ACCESS_TOKEN"])
    try:
        devices = cloud.list_devices()
        if not devices:
            pytest.skip("No devices claimed by this account")
        device = devices[0].refresh()
    finally:
        cloud.close()

    assert device.id == devices[0].id
