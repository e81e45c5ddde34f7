from liveblog.models.engagement_widget import EngagementWidget
from liveblog.models.liveblog import Liveblog
from liveblog.models.push_subscription import PushSubscription
from liveblog.models.sponsor_event import SponsorClick, SponsorImpression
from liveblog.models.sponsor_slot import SponsorSlot
from liveblog.models.ugc_submission import UgcSubmission
from liveblog.models.update import Update
from liveblog.models.update_reaction import UpdateReaction
from liveblog.models.viewer_event import AnalyticsEvent, ViewerPing
from liveblog.models.widget_event import WidgetEvent

__all__ = [
    "AnalyticsEvent",
    "EngagementWidget",
    "Liveblog",
    "PushSubscription",
    "SponsorClick",
    "SponsorImpression",
    "SponsorSlot",
    "UgcSubmission",
    "Update",
    "UpdateReaction",
    "ViewerPing",
    "WidgetEvent",
]
