"""SMS Survey System - Setup & Start Script"""

import os
import sys
import subprocess


def setup_environment():
    """Set up virtual environment and install the project"""
    print("Setting up environment...")

    if not os.path.exists('venv'):
        print("Creating virtual environment...")
        try:
            subprocess.run([sys.executable, '-m', 'venv', 'venv'], check=True)
            print("Virtual environment created")
        except subprocess.CalledProcessError:
            print("Failed to create virtual environment")
            sys.exit(1)
    else:
        print("Virtual environment already exists")

    print("Installing dependencies...")
    try:
        subprocess.run([venv_python(), '-m', 'pip', 'install', '-e', '.'], check=True)
        print("Dependencies installed")
    except subprocess.CalledProcessError:
        print("Failed to install dependencies")
        sys.exit(1)


def venv_python():
    path = os.path.join('venv', 'bin', 'python')
    return path if os.path.exists(path) else sys.executable


def check_environment():
    """Check if environment is ready"""
    if not os.path.exists('venv'):
        print("Virtual environment not found!")
        setup_environment()
        return

    result = subprocess.run([venv_python(), '-c', 'import flask, twilio, apscheduler'],
                            capture_output=True, text=True)
    if result.returncode == 0:
        print("Dependencies OK")
    else:
        print("Missing dependencies!")
        setup_environment()


def main():
    print("SMS Survey System - Setup & Start")
    print("=" * 40)

    check_environment()

    # Development defaults: mock SMS and a local SQLite file
    os.environ.setdefault('USE_MOCK_SMS', 'true')
    os.environ.setdefault('FLASK_ENV', 'development')
    os.environ.setdefault('SECRET_KEY', 'dev-secret-key')
    os.environ.setdefault('PORT', '5001')
    os.environ.setdefault('DATABASE_URL', 'sqlite:///survey.db')
    os.environ.setdefault('BASE_URL', 'http://localhost:5001')

    port = os.environ['PORT']
    print("Starting SMS Survey System...")
    print(f"API: http://localhost:{port}/api")
    print(f"Admin API: http://localhost:{port}/api/admin/dashboard")
    print("Press Ctrl+C to stop")
    print("=" * 40)

    try:
        subprocess.run([venv_python(), 'sms_survey.py'])
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")


if __name__ == "__main__":
    main()
