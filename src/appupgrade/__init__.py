"""appupgrade: a sidecar that keeps locally installed .deb packages current.

Checks GitHub releases for newer package builds and swaps the installed
package (download → remove → install) on request.
"""

__version__ = "0.1.0"
