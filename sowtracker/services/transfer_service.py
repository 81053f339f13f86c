"""Animal transfers between users' organizations"""
import logging
from datetime import datetime
from sowtracker import get_org_db
from sowtracker.models.sow import Sow
from sowtracker.models.boar import Boar
from sowtracker.models.user import User
from sowtracker.models.health import HealthRecord
from sowtracker.models.organization import Organization, OrganizationMember
from sowtracker.models.transfer import TransferRequest
from sowtracker.services import notification_service

logger = logging.getLogger(__name__)

ANIMAL_MODELS = {'sow': Sow, 'boar': Boar}
COLLECTIONS = {'sow': 'sows', 'boar': 'boars'}
# Fields that only make sense inside the source organization
LOCAL_FIELDS = ['_id', 'audit_log', 'housing_unit_id', 'sire_id', 'dam_id', 'created_by', 'deleted_at']

def _animal_label(request):
    return request.get('animal_ear_tag') or request.get('animal_name') or request['animal_type']

def request_transfer(organization, animal_type, animal_id, from_user, data):
    """Create a pending transfer and tell the recipient if they have an account"""
    model = ANIMAL_MODELS.get(animal_type)
    if not model:
        raise ValueError('animal_type must be one of: sow, boar')
    animal = model.find_by_id(organization['slug'], animal_id)
    if not animal:
        raise LookupError(f'{animal_type.capitalize()} not found')

    request = TransferRequest.create_request(
        organization['_id'], animal_type, animal, from_user,
        data.get('to_user_email'), data.get('message'), data.get('retain_records', False)
    )
    recipient = User.find_by_email(request['to_user_email'])
    if recipient:
        notification_service.send_transfer_notification(
            request['_id'], recipient['_id'], 'Animal Transfer Request',
            f"{from_user.get('email')} wants to transfer {animal_type} {_animal_label(request)} to you"
        )
    logger.info(f"Transfer {request['_id']} requested for {animal_type} {_animal_label(request)}")
    return request

def _copy_animal(request, source_org, target_org, animal):
    animal_type = request['animal_type']
    model = ANIMAL_MODELS[animal_type]
    if model.find_by_ear_tag(target_org['slug'], animal.get('ear_tag')):
        raise ValueError(f"Ear tag \"{animal.get('ear_tag')}\" already exists in {target_org['name']}")

    now = datetime.utcnow()
    copy = {k: v for k, v in animal.items() if k not in LOCAL_FIELDS}
    copy.update({
        'status': 'active',
        'housing_unit_id': None,
        'created_by': 'transfer',
        'transferred_from': {
            'organization_id': source_org['_id'],
            'animal_id': animal['_id'],
            'transfer_request_id': request['_id']
        },
        'created_at': now,
        'updated_at': now,
        'deleted_at': None
    })
    copy['sire_id'] = None
    copy['dam_id'] = None
    if animal_type == 'sow':
        copy['audit_log'] = [{
            'activity_type': 'transferred_in',
            'description': f"Transferred from {source_org['name']}",
            'performed_by': request.get('from_user_email'),
            'timestamp': now,
            'details': {'transfer_request_id': str(request['_id'])}
        }]
    result = get_org_db(target_org['slug'])[COLLECTIONS[animal_type]].insert_one(copy)
    return result.inserted_id

def accept_transfer(request_id, user, target_organization_id):
    """Copy the animal and its health records into the recipient's organization

    Raises:
        LookupError: request, organization or animal not found
        PermissionError: not the recipient or no write access to the target
        ValueError: request no longer pending or ear tag clash
    """
    request = TransferRequest.find_by_id(request_id)
    if not request:
        raise LookupError('Transfer request not found')
    if request['to_user_email'] != User.normalize_email(user.get('email')):
        raise PermissionError('This transfer request was sent to someone else')
    if request['status'] != 'pending':
        raise ValueError('This transfer request is no longer pending')

    target_org = Organization.find_by_id(target_organization_id)
    if not target_org:
        raise LookupError('Organization not found')
    membership = OrganizationMember.find_membership(target_org['_id'], user['_id'])
    if not membership or not OrganizationMember.has_permission(membership['role'], 'write'):
        raise PermissionError('You need write access to the receiving organization')

    source_org = Organization.find_by_id(request['organization_id'])
    if not source_org:
        raise LookupError('The sending organization no longer exists')
    animal_type = request['animal_type']
    model = ANIMAL_MODELS[animal_type]
    animal = model.find_by_id(source_org['slug'], request['animal_id'])
    if not animal:
        raise LookupError(f'The {animal_type} is no longer available')

    new_animal_id = _copy_animal(request, source_org, target_org, animal)
    copied_records = HealthRecord.copy_to_organization(
        source_org['slug'], target_org['slug'], animal_type, animal['_id'], new_animal_id
    )

    if request.get('retain_records'):
        model.set_status(source_org['slug'], animal['_id'], 'sold')
    else:
        model.set_status(source_org['slug'], animal['_id'], 'transferred')
        if animal_type == 'sow':
            Sow.delete_sow(source_org['slug'], animal['_id'], user.get('email'))
        else:
            Boar.delete_boar(source_org['slug'], animal['_id'])

    TransferRequest.respond(request_id, 'accepted', {
        'to_user_id': user['_id'],
        'target_organization_id': target_org['_id'],
        'transferred_animal_id': new_animal_id
    })
    notification_service.send_transfer_notification(
        request['_id'], request['from_user_id'], 'Transfer Accepted',
        f"{user.get('email')} accepted the transfer of {animal_type} {_animal_label(request)}"
    )
    logger.info(f"Transfer {request_id} accepted into {target_org['slug']} ({copied_records} health records copied)")
    return {'animal_id': new_animal_id, 'health_records_copied': copied_records}

def decline_transfer(request_id, user):
    request = TransferRequest.find_by_id(request_id)
    if not request:
        raise LookupError('Transfer request not found')
    if request['to_user_email'] != User.normalize_email(user.get('email')):
        raise PermissionError('This transfer request was sent to someone else')
    TransferRequest.respond(request_id, 'declined', {'to_user_id': user['_id']})
    notification_service.send_transfer_notification(
        request['_id'], request['from_user_id'], 'Transfer Declined',
        f"{user.get('email')} declined the transfer of {request['animal_type']} {_animal_label(request)}"
    )

def cancel_transfer(request_id, user):
    request = TransferRequest.find_by_id(request_id)
    if not request:
        raise LookupError('Transfer request not found')
    if request['from_user_id'] != user['_id']:
        raise PermissionError('Only the sender can cancel this transfer request')
    TransferRequest.respond(request_id, 'cancelled')
