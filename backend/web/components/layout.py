"""
Layout component for Hope Institute.

Main layout wrapper that combines header navigation, breadcrumbs, content and
footer into a complete HTML page.
"""

from typing import Optional, Dict, Any
from .base import Component
from .navigation import Navigation
from .breadcrumbs import Breadcrumbs


SITE_NAME = "Hope Institute"


class Layout(Component):
    """Main layout component that assembles the complete page"""

    def __init__(
        self,
        title: str,
        content: str,
        user: Optional[Dict[str, Any]] = None,
        show_nav: bool = True,
        current_path: str = "/",
        description: Optional[str] = None,
        canonical_url: Optional[str] = None,
        csrf_token: Optional[str] = None,
        breadcrumb_labels: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            title: Page title (will be escaped)
            content: Main content HTML (pre-rendered components)
            user: Current session user (optional)
            show_nav: Whether to render the header navigation
            current_path: Current URL path for active navigation highlighting
            description: Meta description for search engines
            canonical_url: Absolute canonical URL for public pages
            csrf_token: Session CSRF token used by the sign-out form
            breadcrumb_labels: Per-page labels for dynamic path segments
        """
        self.title = title
        self.content = content
        self.user = user
        self.show_nav = show_nav
        self.current_path = current_path
        self.description = description
        self.canonical_url = canonical_url
        self.csrf_token = csrf_token
        self.breadcrumb_labels = breadcrumb_labels

    def render(self) -> str:
        """Render the complete HTML document including navigation and chrome."""
        nav_html = self._navigation().render() if self.show_nav else ""
        main_inner = self._render_main_inner()

        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    {self._render_head()}
</head>
<body>
    <a href="#main-content" class="skip-link">Skip to main content</a>

    {nav_html}

    <div id="live-region" class="sr-only" role="status" aria-live="polite" aria-atomic="true"></div>
    <div id="loading-indicator" class="htmx-indicator" aria-hidden="true"></div>

    <main id="main-content" class="main-content" role="main">
        {main_inner}
    </main>

    {self._render_footer()}
</body>
</html>"""

    def render_fragment(self) -> str:
        """Return the HTMX fragment for in-page navigation.

        Why:
            HTMX swaps replace the inner HTML of `<main>`; returning a full
            document would nest a second page inside it.
        Behavior:
            - Renders the children of `<main id="main-content">` identical to
              the full-page render.
            - Appends the header with `hx-swap-oob="true"` so the active link
              and the account area follow the navigation.
            - Includes a `<title>` element; htmx updates `document.title` from it.
        Permissions:
            None. Callers must ensure the invoking route already enforced access.
        """
        main_inner = self._render_main_inner()
        title_tag = f"<title>{self._full_title()}</title>"
        if not self.show_nav:
            return f"{title_tag}{main_inner}"
        header_oob = self._navigation().render(oob=True)
        return f"{title_tag}{main_inner}{header_oob}"

    def _navigation(self) -> Navigation:
        return Navigation(self.user, self.current_path, csrf_token=self.csrf_token)

    def _full_title(self) -> str:
        return f"{self.escape(self.title)} - {SITE_NAME}"

    def _render_head(self) -> str:
        description = self.description or "Hope Institute: vocational courses, intakes and enrollment."
        canonical = (
            f'<link rel="canonical" href="{self.escape(self.canonical_url)}">' if self.canonical_url else ""
        )
        return f"""
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <meta name="description" content="{self.escape(description)}">
    <meta property="og:title" content="{self._full_title()}">
    <meta property="og:description" content="{self.escape(description)}">
    {canonical}

    <title>{self._full_title()}</title>

    <link rel="stylesheet" href="/static/css/app.css?v=1">

    <script src="/static/js/vendor/htmx.min.js"></script>
    <script src="/static/js/app.js?v=1" defer></script>
    """

    def _render_main_inner(self) -> str:
        """Children of <main> so HTMX swaps never nest <main> elements."""
        breadcrumb_html = (
            Breadcrumbs(self.current_path, labels=self.breadcrumb_labels).render() if self.show_nav else ""
        )
        return f"""
        {breadcrumb_html}
        {self.content}
        """

    def _render_footer(self) -> str:
        return f"""
    <footer class="site-footer" role="contentinfo">
        <div class="footer-content">
            <p>&copy; {SITE_NAME}</p>
            <p>
                <a href="/aboutus">About us</a>
                &middot;
                <a href="/contactus">Contact</a>
                &middot;
                <a href="/courses">Courses</a>
            </p>
        </div>
    </footer>"""
