import datetime

from flask import current_app
from flask_mail import Message as MailMessage

from campusconnect.extensions import mail


def today():
    """Calendar date used for streaks and attendance"""
    return datetime.date.today()


def send_welcome_email(to_email, full_name):
    """Send the registration confirmation email; failures are logged, never raised"""
    subject = "Welcome to CampusConnect"

    html_content = f"""
    <html>
      <body style="font-family: Arial, sans-serif; background-color: #f4f8fb; padding: 20px;">
        <div style="max-width: 600px; margin: auto; background-color: #ffffff; border-radius: 10px; padding: 30px;">
            <h2 style="color: #0d6efd; text-align: center;">Welcome, {full_name}!</h2>
            <p style="font-size: 16px;">Your CampusConnect account is ready. Log in to find classmates,
            mentors and study groups at your college.</p>
        </div>
      </body>
    </html>
    """
    text_content = f"Welcome, {full_name}! Your CampusConnect account is ready."

    msg = MailMessage(subject=subject, recipients=[to_email], body=text_content, html=html_content)
    try:
        mail.send(msg)
        return True
    except Exception as e:
        current_app.logger.error(f"Welcome email to {to_email} failed: {e}")
        return False
