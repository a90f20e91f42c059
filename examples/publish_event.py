import os

from dotenv import load_dotenv

from spark_cloud import SparkAPIError, SparkCloud

load_dotenv()

cloud = SparkCloud(access_token=os.getenv("SPARK_ACCESS_TOKEN"))

try:
    result = cloud.publish_event("test", {"source": "examples/publish_event.py"})
    if result.get("ok"):
        print("Event published successfully")
except SparkAPIError as e:
    print(f"Failed to publish event: {e}")
finally:
    cloud.close()
