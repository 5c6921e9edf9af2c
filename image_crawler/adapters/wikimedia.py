# MediaWiki API on Commons, searching the File: namespace. No key needed.
# query.pages is keyed by page id.
DESCRIPTOR = {
    "name": "Wikimedia Commons",
    "apiMode": True,
    "requiresApiKey": False,
    "searchUrl": (
        "https://commons.wikimedia.org/w/api.php?action=query&generator=search&gsrnamespace=6"
        "&gsrsearch={query}&prop=imageinfo&iiprop=url&format=json&origin=*"
    ),
    "api": {
        "resultsPath": "query.pages",
        "urlPath": "imageinfo.0.url",
        "titlePath": "title",
        "perPageParam": "gsrlimit",
        "maxPerPage": 50,
    },
}
