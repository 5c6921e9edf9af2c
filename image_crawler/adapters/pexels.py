# Pexels search API. The key goes in the Authorization header as-is.
DESCRIPTOR = {
    "name": "Pexels",
    "apiMode": True,
    "requiresApiKey": True,
    "searchUrl": "https://api.pexels.com/v1/search?query={query}",
    "api": {
        "resultsPath": "photos",
        "urlPath": "src.original",
        "titlePath": "alt",
        "keyHeader": "Authorization",
        "perPageParam": "per_page",
        "pageParam": "page",
        "maxPerPage": 80,
    },
    "apiKeyInstructions": "Get a free key at https://www.pexels.com/api/.",
}
