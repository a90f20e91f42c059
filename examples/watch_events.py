import logging
import os
import sys

from dotenv import load_dotenv

from spark_cloud import EventRecord, SparkCloud

load_dotenv()
logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(asctime)s] %(name)s - %(message)s")


def show(record: EventRecord) -> None:
    print(f"{record.published_at} {record.device_id} {record.name}: {record.data}")


event_name = sys.argv[1] if len(sys.argv) > 1 else None

cloud = SparkCloud(access_token=os.getenv("SPARK_ACCESS_TOKEN"), timeout_s=30.0)
try:
    # Blocks until the cloud closes the stream or Ctrl+C.
    cloud.get_event_stream(event_name, "mine", show)
except KeyboardInterrupt:
    pass
finally:
    cloud.close()
