"""In-page anti-fingerprinting patches.

``FingerprintPatcher`` renders one self-contained script and registers it with
``page.add_init_script`` so it runs in every new document (navigations and
frames included) before any site script. It redefines, via accessors:

- ``navigator.webdriver`` (hidden)
- ``navigator.languages`` (configured locale list)
- ``navigator.plugins`` (non-empty list)
- ``permissions.query`` (notifications answered from ``Notification.permission``)
- ``window.devicePixelRatio`` (small jitter, fixed for the page load)
- WebGL ``UNMASKED_VENDOR_WEBGL`` / ``UNMASKED_RENDERER_WEBGL`` (spoofed)
- ``mediaDevices.enumerateDevices`` (default mic / speaker / camera when empty)

A failed registration only raises detection risk; extraction still proceeds.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from playwright.async_api import Error as PlaywrightError

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGES: tuple[str, ...] = ("ru-RU", "ru", "en-US", "en")
DEFAULT_WEBGL_VENDOR = "Intel Inc."
DEFAULT_WEBGL_RENDERER = "Intel Iris OpenGL"

# Substituted with json-encoded values; kept free of str.format braces.
_PATCH_TEMPLATE = """
(() => {
  const LANGUAGES = __LANGUAGES__;
  const GL_VENDOR = __GL_VENDOR__;
  const GL_RENDERER = __GL_RENDERER__;
  const DPR_JITTER = __DPR_JITTER__;

  const define = (target, prop, getter) => {
    try {
      Object.defineProperty(target, prop, { get: getter, configurable: true });
    } catch (e) {}
  };

  // webdriver
  define(Navigator.prototype, 'webdriver', () => undefined);

  // languages
  define(Navigator.prototype, 'languages', () => LANGUAGES.slice());

  // plugins
  const plugins = [1, 2, 3, 4, 5].map(i => ({ name: 'Plugin' + i, filename: 'plugin' + i + '.dll' }));
  define(Navigator.prototype, 'plugins', () => plugins);

  // permissions
  const permissions = window.navigator.permissions;
  const originalQuery = permissions && permissions.query;
  if (originalQuery) {
    permissions.query = function (parameters) {
      if (parameters && parameters.name === 'notifications') {
        return Promise.resolve({ state: Notification.permission });
      }
      try {
        return originalQuery.call(this, parameters);
      } catch (e) {
        return originalQuery.call(permissions, parameters);
      }
    };
  }

  // devicePixelRatio, one value per page load
  const dpr = 1 + Math.random() * DPR_JITTER;
  define(window, 'devicePixelRatio', () => dpr);

  // WebGL vendor / renderer
  const patchGL = (proto) => {
    if (!proto) return;
    const getParameter = proto.getParameter;
    proto.getParameter = function (param) {
      if (param === 37445) return GL_VENDOR;    // UNMASKED_VENDOR_WEBGL
      if (param === 37446) return GL_RENDERER;  // UNMASKED_RENDERER_WEBGL
      return getParameter.call(this, param);
    };
  };
  patchGL(window.WebGLRenderingContext && WebGLRenderingContext.prototype);
  patchGL(window.WebGL2RenderingContext && WebGL2RenderingContext.prototype);

  // media devices
  const mediaDevices = navigator.mediaDevices;
  const origEnumerate = mediaDevices && mediaDevices.enumerateDevices;
  if (origEnumerate) {
    mediaDevices.enumerateDevices = async () => {
      const list = await origEnumerate.call(mediaDevices);
      if (!list || list.length === 0) {
        return [
          { kind: 'audioinput', deviceId: 'default', groupId: 'default', label: 'Default - Microphone' },
          { kind: 'audiooutput', deviceId: 'default', groupId: 'default', label: 'Default - Speakers' },
          { kind: 'videoinput', deviceId: 'default', groupId: 'default', label: 'Default - Camera' }
        ];
      }
      return list;
    };
  }
})();
"""


class FingerprintPatcher:
    """Builds and registers the anti-fingerprinting init script.

    Args:
        languages: Value reported by ``navigator.languages``.
        webgl_vendor: Spoofed ``UNMASKED_VENDOR_WEBGL``.
        webgl_renderer: Spoofed ``UNMASKED_RENDERER_WEBGL``.
        dpr_jitter: Upper bound of the random amount added to a DPR of 1.
    """

    def __init__(
        self,
        *,
        languages: Sequence[str] = DEFAULT_LANGUAGES,
        webgl_vendor: str = DEFAULT_WEBGL_VENDOR,
        webgl_renderer: str = DEFAULT_WEBGL_RENDERER,
        dpr_jitter: float = 0.25,
    ) -> None:
        self.languages = list(languages) or list(DEFAULT_LANGUAGES)
        self.webgl_vendor = webgl_vendor
        self.webgl_renderer = webgl_renderer
        self.dpr_jitter = dpr_jitter

    def build_script(self) -> str:
        """Return the self-contained patch script."""
        substitutions = {
            "__LANGUAGES__": json.dumps(self.languages),
            "__GL_VENDOR__": json.dumps(self.webgl_vendor),
            "__GL_RENDERER__": json.dumps(self.webgl_renderer),
            "__DPR_JITTER__": json.dumps(self.dpr_jitter),
        }
        script = _PATCH_TEMPLATE
        for placeholder, value in substitutions.items():
            script = script.replace(placeholder, value)
        return script

    async def apply(self, page: Page) -> bool:
        """Register the script on *page* for every future document.

        Returns:
            ``True`` when registration succeeded.
        """
        try:
            await page.add_init_script(script=self.build_script())
        except PlaywrightError as exc:
            logger.warning("Fingerprint patches not applied (higher detection risk): %s", exc)
            return False
        logger.debug("Fingerprint patches registered")
        return True
