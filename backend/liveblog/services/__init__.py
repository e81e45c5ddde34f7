# change_stream registers the Update/Session listeners that feed the SSE relay; importing any
# service module pulls it in.
from liveblog.services.change_stream import change_hub
from liveblog.services.publish import FanoutChannels, run_scheduled_publish
from liveblog.services.sponsors import run_sponsor_lifecycle

__all__ = ["change_hub", "FanoutChannels", "run_scheduled_publish", "run_sponsor_lifecycle"]
