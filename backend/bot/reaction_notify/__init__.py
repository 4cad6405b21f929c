"""
# REACTION NOTIFICATIONS FOR SPOILERED POSTS

```
user: react to spoilered message in group
> look up owner of the message, skip untracked messages
> edit owner's DM notification or send a new one if edit fails,
    remember notification message ID

user: remove all reactions
> edit notification to "reacted: ... and removed", remember removal time
> after grace window: delete notification unless another reaction
    arrived in the meantime (removal time works as a fence)
```
"""

from .cleanup import CleanupScheduler, CleanupTicket
from .handlers import handle_message_reaction
from .processor import Outcome, ReactionNotifier
