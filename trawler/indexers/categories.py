from types import MappingProxyType
from typing import List, Optional

from trawler.models import ContentType

# Newznab category ids
CONTENT_CATEGORIES = MappingProxyType(
    {
        ContentType.MOVIE: (2000,),
        ContentType.TV_SHOW: (5000,),
        ContentType.GAME: (4050, 1000),
    }
)

GAME_PLATFORM_CATEGORIES = MappingProxyType(
    {
        "pc": (4050,),
        "windows": (4050,),
        "mac": (4030,),
        "nds": (1010,),
        "psp": (1020,),
        "wii": (1030,),
        "xbox": (1040,),
        "xbox360": (1050,),
        "ps3": (1080,),
        "3ds": (1110,),
        "vita": (1120,),
        "wiiu": (1130,),
        "xboxone": (1140,),
        "ps4": (1180,),
        "switch": (1000,),
        "ps5": (1000,),
        "android": (4070,),
        "ios": (4060,),
    }
)


def normalize_platform(platform: str) -> str:
    return "".join(ch for ch in platform.lower() if ch.isalnum())


def categories_for(content_type: ContentType, platform: Optional[str] = None) -> List[int]:
    if content_type == ContentType.GAME and platform:
        categories = GAME_PLATFORM_CATEGORIES.get(normalize_platform(platform))
        if categories:
            return list(categories)
    return list(CONTENT_CATEGORIES[content_type])
