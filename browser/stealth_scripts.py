"""
JavaScript payloads injected into the browser context before any page script.

The payload covers basic fingerprint and automation-flag checks:

- automation artefacts (``navigator.webdriver``, Playwright globals)
- navigator consistency (languages, platform, hardware concurrency)
- visibility / focus state (a backgrounded window reads as ``hidden``)
"""

import json
from typing import List, Optional

# ============================================================================
# 1. AUTOMATION ARTEFACTS
# Must run first so later payloads see a clean navigator
# ============================================================================
AUTOMATION_ARTIFACT_REMOVAL = """
(function() {
    'use strict';

    try { delete Object.getPrototypeOf(navigator).webdriver; } catch(e) {}
    try {
        Object.defineProperty(navigator, 'webdriver', {
            get: () => false,
            configurable: true
        });
    } catch(e) {}

    const globals = [
        '__playwright', '__pw_manual', '__PW_inspect',
        '__playwright_evaluation_script__', '__pwPage',
        '__driver_evaluate', '__webdriver_evaluate',
        '__selenium_evaluate', '__fxdriver_evaluate',
        'domAutomation', 'domAutomationController'
    ];
    for (const name of globals) {
        try { delete window[name]; } catch(e) {}
    }

    const nativeToString = Function.prototype.toString;
    const patched = new WeakMap();
    Function.prototype.toString = function() {
        return patched.has(this) ? patched.get(this) : nativeToString.call(this);
    };
    patched.set(Function.prototype.toString, 'function toString() { [native code] }');
    window.__markNative = function(fn, name) {
        patched.set(fn, 'function ' + name + '() { [native code] }');
    };
})();
"""

# ============================================================================
# 2. NAVIGATOR CONSISTENCY
# Reads window.__STEALTH_* values set by the init preamble
# ============================================================================
NAVIGATOR_CONSISTENCY = """
(function() {
    'use strict';

    const define = (key, value) => {
        try {
            Object.defineProperty(navigator, key, {
                get: () => value,
                configurable: true
            });
        } catch(e) {}
    };

    if (window.__STEALTH_LANGUAGES__) {
        define('languages', Object.freeze([...window.__STEALTH_LANGUAGES__]));
        define('language', window.__STEALTH_LANGUAGES__[0]);
    }
    if (window.__STEALTH_PLATFORM__) {
        define('platform', window.__STEALTH_PLATFORM__);
    }
    if (window.__STEALTH_CORES__) {
        define('hardwareConcurrency', window.__STEALTH_CORES__);
    }
})();
"""

# ============================================================================
# 3. VISIBILITY / FOCUS
# ============================================================================
VISIBILITY_PROTECTION = """
(function() {
    'use strict';

    try {
        Object.defineProperty(document, 'visibilityState', {
            get: () => 'visible',
            configurable: true
        });
        Object.defineProperty(document, 'hidden', {
            get: () => false,
            configurable: true
        });
    } catch(e) {}

    document.hasFocus = function() { return true; };
    if (window.__markNative) window.__markNative(document.hasFocus, 'hasFocus');
})();
"""


def get_stealth_script(
    languages: Optional[List[str]] = None,
    platform: str = "Win32",
    hardware_concurrency: int = 8,
) -> str:
    """Return the combined init script.

    Args:
        languages: ``navigator.languages`` value (e.g. ``['de-DE', 'de']``).
        platform: ``navigator.platform`` value.
        hardware_concurrency: Reported CPU core count.

    Returns:
        JavaScript source for ``BrowserContext.add_init_script``.
    """
    languages_literal = json.dumps(list(languages or ["de-DE", "de"]))
    preamble = f"""
    window.__STEALTH_LANGUAGES__ = {languages_literal};
    window.__STEALTH_PLATFORM__ = {json.dumps(platform)};
    window.__STEALTH_CORES__ = {int(hardware_concurrency)};
    """
    return "\n\n".join([
        preamble,
        AUTOMATION_ARTIFACT_REMOVAL,
        NAVIGATOR_CONSISTENCY,
        VISIBILITY_PROTECTION,
    ])
