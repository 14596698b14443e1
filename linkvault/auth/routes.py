from flask import flash, redirect, render_template, request, url_for

from linkvault.auth import auth_bp
from linkvault.backend import get_backend
from linkvault.errors import StorageError, ValidationError


@auth_bp.route("/register", methods=["GET", "POST"])
def register():
    auth = get_backend().auth
    if auth.get_current_user():
        return redirect(url_for("web.bookmarks"))

    if request.method == "POST":
        email = (request.form.get("email") or "").strip()
        password = request.form.get("password") or ""
        confirm = request.form.get("confirm_password") or ""

        if password != confirm:
            flash("Passwords do not match.", "error")
        else:
            try:
                auth.register(email, password)
            except (ValidationError, StorageError) as exc:
                flash(str(exc), "error")
            else:
                auth.sign_in(email, password)
                return redirect(url_for("web.bookmarks"))

    return render_template("register.html")


@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    auth = get_backend().auth
    if auth.get_current_user():
        return redirect(url_for("web.bookmarks"))

    if request.method == "POST":
        email = (request.form.get("email") or "").strip()
        password = request.form.get("password") or ""
        if auth.sign_in(email, password):
            return redirect(url_for("web.bookmarks"))
        flash("Invalid credentials.", "error")

    return render_template("login.html")


@auth_bp.route("/logout", methods=["POST"])
def logout():
    get_backend().auth.sign_out()
    return redirect(url_for("web.index"))
