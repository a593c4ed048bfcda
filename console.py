"""
Console output helpers
Coloured status lines shared by the database bootstrap and its transports
"""

# ANSI Colors
class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    DIM = '\033[2m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'

DIVIDER_WIDTH = 60

def print_header(msg):
    print(f"\n{Colors.HEADER}{Colors.BOLD}{'='*DIVIDER_WIDTH}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD} {msg} {Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{'='*DIVIDER_WIDTH}{Colors.ENDC}")

def print_success(msg):
    print(f"{Colors.GREEN}✔ {msg}{Colors.ENDC}")

def print_error(msg):
    print(f"{Colors.FAIL}✘ {msg}{Colors.ENDC}")

def print_warning(msg):
    print(f"{Colors.WARNING}⚠ {msg}{Colors.ENDC}")

def print_info(msg):
    print(f"{Colors.BLUE}ℹ {msg}{Colors.ENDC}")

def print_divider():
    print(f"{Colors.DIM}{'-'*DIVIDER_WIDTH}{Colors.ENDC}")
