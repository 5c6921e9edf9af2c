# Flickr REST API (flickr.photos.search). Photo URLs are built from the
# server/id/secret fields; the _b suffix is the 1024px rendition.
DESCRIPTOR = {
    "name": "Flickr",
    "apiMode": True,
    "requiresApiKey": True,
    "searchUrl": (
        "https://api.flickr.com/services/rest/?method=flickr.photos.search&text={query}"
        "&sort=relevance&content_type=1&media=photos&format=json&nojsoncallback=1"
    ),
    "searchParamsConfig": {
        "safeSearch": {"paramName": "safe_search", "onValue": "1", "offValue": "3"},
    },
    "api": {
        "resultsPath": "photos.photo",
        "urlTemplate": "https://live.staticflickr.com/{server}/{id}_{secret}_b.jpg",
        "titlePath": "title",
        "keyParam": "api_key",
        "perPageParam": "per_page",
        "pageParam": "page",
        "maxPerPage": 500,
    },
    "apiKeyInstructions": "Create a key at https://www.flickr.com/services/apps/create/.",
}
