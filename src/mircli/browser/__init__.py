"""Browser automation modules (Playwright, async API).

Settlement heuristics live in ``network_monitor`` and ``dom_quiescence``;
anti-detection in ``fingerprint`` (in-page patches) and ``stealth``
(launch profile); ``challenge`` scans for anti-bot interstitials and
``snapshot`` owns the early/final capture fallback chain.
"""
