"""
Navigation component for Hope Institute.

Role-aware navigation: visitors see the public site links, learners get their
profile and payment history, admins get the back-office sections. All links
use HTMX for SPA-like navigation without full page reloads.
"""

from typing import Optional, Dict, Any, List, Tuple
from .base import Component

# ---------------------------------------------------------------------------
# Route registry
# ---------------------------------------------------------------------------

RouteMeta = Dict[str, str]

ROUTE_MAP: Dict[str, RouteMeta] = {
    "/": {"label": "Home"},
    "/courses": {"label": "Courses"},
    "/courses/:slug": {"label_template": "{slug}"},
    "/aboutus": {"label": "About us"},
    "/contactus": {"label": "Contact"},
    "/users": {"label": "My account"},
    "/users/profile": {"label": "Profile"},
    "/users/payment-history": {"label": "Payment history"},
    "/admin": {"label": "Admin"},
    "/admin/dashboard": {"label": "Dashboard"},
    "/admin/courses": {"label": "Courses"},
    "/admin/courses/new": {"label": "New course"},
    "/admin/courses/edit": {"label": "Edit"},
    "/admin/courses/:course_id": {"label": "Course"},
    "/admin/courses/edit/:course_id": {"label": "Edit course"},
    "/admin/categories": {"label": "Categories"},
    "/admin/affiliations": {"label": "Affiliations"},
    "/admin/intakes": {"label": "Intakes"},
    "/admin/intakes/:intake_id": {"label": "Intake"},
    "/admin/enrollments": {"label": "Enrollments"},
    "/admin/enrollments/:enrollment_id": {"label": "Enrollment"},
    "/admin/payments": {"label": "Payments"},
    "/admin/payments/:payment_id": {"label": "Payment"},
    "/admin/refunds": {"label": "Refunds"},
    "/admin/users": {"label": "Users"},
    "/admin/users/deleted": {"label": "Deleted users"},
    "/admin/contact-requests": {"label": "Contact requests"},
    "/admin/email-logs": {"label": "E-mail logs"},
    "/sign-in": {"label": "Sign in"},
    "/sign-up": {"label": "Sign up"},
    "/forgot-password": {"label": "Forgot password"},
    "/reset-password": {"label": "Reset password"},
}

NavItem = Tuple[str, str]

PUBLIC_ITEMS: List[NavItem] = [
    ("/", "Home"),
    ("/courses", "Courses"),
    ("/aboutus", "About us"),
    ("/contactus", "Contact"),
]

LEARNER_ITEMS: List[NavItem] = PUBLIC_ITEMS + [
    ("/users/profile", "My profile"),
    ("/users/payment-history", "Payment history"),
]

ADMIN_ITEMS: List[NavItem] = [
    ("/admin/dashboard", "Dashboard"),
    ("/admin/courses", "Courses"),
    ("/admin/categories", "Categories"),
    ("/admin/affiliations", "Affiliations"),
    ("/admin/intakes", "Intakes"),
    ("/admin/enrollments", "Enrollments"),
    ("/admin/payments", "Payments"),
    ("/admin/refunds", "Refunds"),
    ("/admin/users", "Users"),
    ("/admin/contact-requests", "Contact requests"),
    ("/admin/email-logs", "E-mail logs"),
    ("/", "Public site"),
]


class Navigation(Component):
    """Header navigation with role-based menu items."""

    def __init__(
        self,
        user: Optional[Dict[str, Any]] = None,
        current_path: str = "/",
        csrf_token: Optional[str] = None,
    ):
        """
        Args:
            user: Session user dict with `role` (optional)
            current_path: Current URL path for active link highlighting
            csrf_token: Token for the sign-out form when a user is present
        """
        self.user = user
        self.current_path = current_path or "/"
        self.csrf_token = csrf_token

    def render(self, oob: bool = False) -> str:
        items = self._get_nav_items()
        active = self._determine_active_href(items)
        links = "".join(self._create_nav_link(href, text, href == active) for href, text in items)
        oob_attr = ' hx-swap-oob="true"' if oob else ""
        return f"""
    <header class="site-header" id="site-header"{oob_attr}>
        <a class="site-brand" href="/">Hope Institute</a>
        <nav class="site-nav" role="navigation" aria-label="Main navigation">
            {links}
        </nav>
        <div class="site-account">{self._render_account()}</div>
    </header>"""

    def _get_nav_items(self) -> List[NavItem]:
        """Return the menu for the current role.

        Unknown roles fall back to the public menu: visibility alone must not
        suggest permissions the middleware would refuse.
        """
        role = str((self.user or {}).get("role", "")).lower()
        if not self.user:
            return PUBLIC_ITEMS
        if role == "service_role" and self.current_path.startswith("/admin"):
            return ADMIN_ITEMS
        if role == "service_role":
            return PUBLIC_ITEMS + [("/admin/dashboard", "Admin")]
        return LEARNER_ITEMS

    def _determine_active_href(self, items: List[NavItem]) -> str:
        """Pick the single active href using best prefix match."""
        path = self.current_path
        best = ""
        for href, _text in items:
            if href == path:
                return href
            if href != "/" and path.startswith(href + "/") and len(href) > len(best):
                best = href
        return best or ("/" if path == "/" else "")

    def _create_nav_link(self, href: str, text: str, is_active: bool) -> str:
        active_class = " active" if is_active else ""
        aria_attr = ' aria-current="page"' if is_active else ""
        return f"""
            <a href="{href}"
               hx-get="{href}"
               hx-target="#main-content"
               hx-push-url="true"
               class="nav-link{active_class}"{aria_attr}>{self.escape(text)}</a>"""

    def _render_account(self) -> str:
        if not self.user:
            return (
                '<a class="btn btn-secondary" href="/sign-in">Sign in</a>'
                '<a class="btn btn-primary" href="/sign-up">Sign up</a>'
            )
        name = self.user.get("name") or self.user.get("email") or ""
        # Sign-out is a POST so it cannot be triggered by a cross-site link
        token = f'<input type="hidden" name="csrf_token" value="{self.escape(self.csrf_token)}">' if self.csrf_token else ""
        return f"""
            <span class="user-name">{self.escape(name)}</span>
            <form method="post" action="/sign-out" class="sign-out-form">
                {token}
                <button type="submit" class="btn btn-link">Sign out</button>
            </form>"""
