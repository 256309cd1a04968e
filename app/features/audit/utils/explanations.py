# Security headers checked on every scan, in reporting order.
HEADER_EXPLANATIONS = {
    "strict-transport-security": "Forces browsers to use HTTPS only, protecting users from insecure connections.",
    "x-frame-options": "Prevents your site from being embedded in other sites, stopping clickjacking attacks.",
    "x-content-type-options": "Prevents browsers from misinterpreting files, reducing certain attacks.",
    "content-security-policy": "Controls what content is allowed (scripts, images, etc.) to block XSS attacks.",
    "referrer-policy": "Controls what information is sent when users click external links (privacy protection).",
    "permissions-policy": "Restricts access to features like camera, microphone, or location for better security.",
}

REQUIRED_SECURITY_HEADERS = list(HEADER_EXPLANATIONS)

# Lighthouse audit id -> (report key, explanation)
PERFORMANCE_METRICS = {
    "first-contentful-paint": (
        "first_contentful_paint",
        "How fast the first text or image appears on screen. Aim under 2 seconds.",
    ),
    "speed-index": (
        "speed_index",
        "Measures how quickly the visible parts of the page are displayed. Lower is better.",
    ),
    "interactive": (
        "interactive",
        "When the page is fully usable. Should be under 5 seconds.",
    ),
    "total-blocking-time": (
        "total_blocking_time",
        "Time the browser was blocked by scripts. Lower means smoother experience.",
    ),
    "largest-contentful-paint": (
        "largest_contentful_paint",
        "Time taken for the biggest image or text to appear. Aim under 2.5 seconds.",
    ),
    "cumulative-layout-shift": (
        "cumulative_layout_shift",
        "Measures how much the layout shifts unexpectedly. Keep it below 0.1.",
    ),
}

AI_SUGGESTION_FALLBACK = "AI suggestion could not be generated."
