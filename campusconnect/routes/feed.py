"""
CampusConnect - Feed
Posts, likes and comments. Counters on the post row track likes and comments.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from campusconnect.models import ROLES, Post, PostLike, PostComment
from campusconnect.extensions import db
from .helpers import (
    ActionError, token_required, save_file, notify, profile_summary, get_json_body,
    success_response, error_response, ALLOWED_IMAGE_EXT
)

feed_bp = Blueprint("feed", __name__)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def visible_posts(user):
    """Posts from the user's institution (or unscoped) addressed to their role"""
    query = Post.query
    institution_id = user.profile.institution_id if user.profile else None
    if institution_id:
        query = query.filter(or_(Post.institution_id == institution_id, Post.institution_id.is_(None)))
    return query


def can_see(user, post):
    return not post.audience or user.role in post.audience or post.author_id == user.id


def serialize_post(post, viewer_id):
    return {
        "id": post.id,
        "content": post.content,
        "image_url": post.image_url,
        "audience": post.audience or [],
        "likes_count": post.likes_count,
        "comments_count": post.comments_count,
        "liked": PostLike.query.filter_by(post_id=post.id, user_id=viewer_id).first() is not None,
        "is_mine": post.author_id == viewer_id,
        "author": profile_summary(post.author),
        "created_at": post.created_at.isoformat() if post.created_at else None
    }


def toggle_like(user, post):
    """Like, or unlike when already liked. Returns the new liked state."""
    existing = PostLike.query.filter_by(post_id=post.id, user_id=user.id).first()
    if existing:
        db.session.delete(existing)
        Post.query.filter(Post.id == post.id, Post.likes_count > 0).update(
            {Post.likes_count: Post.likes_count - 1}, synchronize_session=False
        )
        return False

    db.session.add(PostLike(post_id=post.id, user_id=user.id))
    Post.query.filter(Post.id == post.id).update(
        {Post.likes_count: Post.likes_count + 1}, synchronize_session=False
    )
    if post.author_id != user.id:
        notify(
            post.author_id, "post_like", f"{user.name} liked your post", post.content[:80],
            created_by=user.id, action_type="post", action_id=post.id
        )
    return True


# ============================================================================
# POSTS
# ============================================================================

@feed_bp.route("/feed", methods=["GET"])
@token_required
def get_feed(current_user):
    """Newest first. Query params: page, per_page, author_id"""
    page = max(request.args.get("page", 1, type=int), 1)
    per_page = min(request.args.get("per_page", 20, type=int), 50)

    query = visible_posts(current_user)
    author_id = request.args.get("author_id", type=int)
    if author_id:
        query = query.filter(Post.author_id == author_id)

    posts = [p for p in query.order_by(Post.created_at.desc(), Post.id.desc()).all() if can_see(current_user, p)]
    start = (page - 1) * per_page
    window = posts[start:start + per_page]

    return jsonify({
        "status": "success",
        "data": {
            "posts": [serialize_post(p, current_user.id) for p in window],
            "page": page,
            "has_more": start + per_page < len(posts)
        }
    })


@feed_bp.route("/feed/posts", methods=["POST"])
@token_required
def create_post(current_user):
    """
    JSON or multipart. Fields: content, audience (list of roles, empty = everyone),
    optional 'image' file.
    """
    try:
        data = get_json_body()
        content = (data.get("content") or "").strip()
        if not content:
            return error_response("Post content is required")

        audience = data.get("audience") or []
        if isinstance(audience, str):
            audience = [a.strip() for a in audience.split(",") if a.strip()]
        if any(role not in ROLES for role in audience):
            return error_response(f"Audience entries must be one of: {', '.join(ROLES)}")

        image_url = save_file(request.files.get("image"), "posts", ALLOWED_IMAGE_EXT)

        post = Post(
            author_id=current_user.id,
            institution_id=current_user.profile.institution_id,
            content=content,
            image_url=image_url,
            audience=audience
        )
        db.session.add(post)
        db.session.commit()

        return success_response("Post created", data=serialize_post(post, current_user.id)), 201

    except ActionError as e:
        db.session.rollback()
        return error_response(e.message, e.status_code)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Create post error: {str(e)}")
        return error_response("Failed to create post", 500)


@feed_bp.route("/feed/posts/<int:post_id>", methods=["DELETE"])
@token_required
def delete_post(current_user, post_id):
    try:
        post = Post.query.get(post_id)
        if not post:
            return error_response("Post not found", 404)
        if post.author_id != current_user.id and current_user.role != "authority":
            return error_response("You can only delete your own posts", 403)

        db.session.delete(post)
        db.session.commit()
        return success_response("Post deleted")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Delete post error: {str(e)}")
        return error_response("Failed to delete post", 500)


@feed_bp.route("/feed/posts/<int:post_id>/like", methods=["POST"])
@token_required
def like_post(current_user, post_id):
    """Toggle: liking an already-liked post removes the like"""
    try:
        post = Post.query.get(post_id)
        if not post or not can_see(current_user, post):
            return error_response("Post not found", 404)

        liked = toggle_like(current_user, post)
        db.session.commit()
        db.session.refresh(post)

        return success_response(
            "Post liked" if liked else "Like removed",
            data={"liked": liked, "likes_count": post.likes_count}
        )

    except IntegrityError:
        db.session.rollback()
        return error_response("Like already recorded", 409)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Like post error: {str(e)}")
        return error_response("Failed to process like", 500)


# ============================================================================
# COMMENTS
# ============================================================================

@feed_bp.route("/feed/posts/<int:post_id>/comments", methods=["GET"])
@token_required
def get_comments(current_user, post_id):
    post = Post.query.get(post_id)
    if not post or not can_see(current_user, post):
        return error_response("Post not found", 404)

    comments = post.comments.order_by(PostComment.created_at.asc(), PostComment.id.asc()).all()
    return jsonify({
        "status": "success",
        "data": {
            "comments": [
                {
                    "id": c.id,
                    "content": c.content,
                    "author": profile_summary(c.author),
                    "created_at": c.created_at.isoformat() if c.created_at else None
                }
                for c in comments
            ]
        }
    })


@feed_bp.route("/feed/posts/<int:post_id>/comments", methods=["POST"])
@token_required
def add_comment(current_user, post_id):
    """Body: {"content": "..."}"""
    try:
        post = Post.query.get(post_id)
        if not post or not can_see(current_user, post):
            return error_response("Post not found", 404)

        data = request.get_json(silent=True) or {}
        content = (data.get("content") or "").strip()
        if not content:
            return error_response("Comment cannot be empty")

        comment = PostComment(post_id=post.id, author_id=current_user.id, content=content)
        db.session.add(comment)
        Post.query.filter(Post.id == post.id).update(
            {Post.comments_count: Post.comments_count + 1}, synchronize_session=False
        )
        if post.author_id != current_user.id:
            notify(
                post.author_id, "post_comment", f"{current_user.name} commented on your post",
                content[:80], created_by=current_user.id, action_type="post", action_id=post.id
            )
        db.session.commit()

        return success_response("Comment added", data={"id": comment.id, "content": comment.content}), 201

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Add comment error: {str(e)}")
        return error_response("Failed to add comment", 500)


@feed_bp.route("/feed/comments/<int:comment_id>", methods=["DELETE"])
@token_required
def delete_comment(current_user, comment_id):
    try:
        comment = PostComment.query.get(comment_id)
        if not comment:
            return error_response("Comment not found", 404)
        if comment.author_id != current_user.id:
            return error_response("You can only delete your own comments", 403)

        post_id = comment.post_id
        db.session.delete(comment)
        Post.query.filter(Post.id == post_id, Post.comments_count > 0).update(
            {Post.comments_count: Post.comments_count - 1}, synchronize_session=False
        )
        db.session.commit()
        return success_response("Comment deleted")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Delete comment error: {str(e)}")
        return error_response("Failed to delete comment", 500)
