import requests
import time
import threading
import uuid

BASE_URL = "http://localhost:8000"

# Color codes for terminal output
RED = '\033[91m'
GREEN = '\033[92m'
YELLOW = '\033[93m'
CYAN = '\033[96m'
RESET = '\033[0m'

def print_banner():
    print(f"{RED}================================================={RESET}")
    print(f"{RED}      SENTINEL DISPATCH SIMULATION STARTED       {RESET}")
    print(f"{RED}================================================={RESET}")

def simulate_caller(turns, delay=0, location_event=None):
    """Simulates one voice session: call-start, utterances, session end"""
    time.sleep(delay)
    call_id = f"SIM-{uuid.uuid4().hex[:8]}"

    try:
        res = requests.post(f"{BASE_URL}/v1/dispatch/call-start", json={"incident_id": call_id})
        incident = res.json()["call"]
        print(f"📞 {CYAN}Incoming Call{RESET} {call_id} (incident {incident['id']})")
    except Exception as e:
        print(f"❌ Connection Failed: {e}")
        return

    for speaker, text in turns:
        time.sleep(1.5)  # Simulate speaking time
        requests.post(
            f"{BASE_URL}/api/incidents/{incident['id']}/utterances",
            json={"speaker": speaker, "text": text},
        )

    if location_event:
        requests.post(
            f"{BASE_URL}/v1/dispatch/events",
            json={"incident_id": call_id, "event_type": "location_update", **location_event},
            headers={"Idempotency-Key": f"{call_id}-location"},
        )

    requests.post(f"{BASE_URL}/api/incidents/{incident['id']}/session/end")

def run_simulation():
    print_banner()

    threads = []

    # Routine, low priority
    threads.append(threading.Thread(target=simulate_caller, args=([
        ("ai", "Emergency services, what is your emergency?"),
        ("caller", "Hi, my neighbour's cat is stuck in a tree on Park Street."),
        ("caller", "It's been there about an hour, nobody is hurt."),
    ], 0)))

    # Structure fire with trapped victims
    threads.append(threading.Thread(target=simulate_caller, args=([
        ("ai", "Emergency services, what is your emergency?"),
        ("caller", "There's a fire at 123 Main Street, two people trapped!"),
        ("ai", "Is anyone injured?"),
        ("caller", "One of them is coughing badly, I think they need an ambulance."),
    ], 1)))

    # Caller only knows a landmark; the location webhook fills in the address
    threads.append(threading.Thread(target=simulate_caller, args=([
        ("ai", "Emergency services, what is your emergency?"),
        ("caller", "A man collapsed near the fountain, he's not breathing!"),
    ], 2, {
        "location_json": {"address": {"Street": "Market Street", "State_Province_Town_City": "San Francisco"}},
        "approximate_location": "Ferry Building",
    })))

    for t in threads:
        t.start()

    for t in threads:
        t.join()

    print(f"\n{YELLOW}⚡ All calls placed. Waiting for extraction...{RESET}\n")
    time.sleep(5)

    state = requests.get(f"{BASE_URL}/api/incidents/").json()

    print(f"{GREEN}--- 📋 ACTIVE INCIDENTS ---{RESET}")
    print(f"{'PRIORITY':<10} | {'TYPE':<20} | {'VICTIMS':<7} | {'LOCATION'}")
    print("-" * 70)

    for incident in state['active_calls']:
        priority = incident.get('priority', 'medium')
        row_color = RED if priority in ('high', 'critical') else (YELLOW if priority == 'medium' else RESET)
        print(
            f"{row_color}{priority:<10} | {str(incident.get('incident_type')):<20} | "
            f"{incident.get('number_of_victims', 0):<7} | {incident.get('location_text')}{RESET}"
        )

if __name__ == "__main__":
    run_simulation()
