"""
# SPOILERED BLUESKY POSTS

```
user: /spoiler <bluesky post URL>
> react to the command, fetch images of the post,
    send them back as spoilered media crediting the user,
    register user as owner of every sent message, delete the command
```
"""

from .commands import command_spoiler, command_start
